from abc import ABCMeta, abstractmethod
from pathlib import Path

from hostbackup.command_runner import CommandResult, CommandRunner
from hostbackup.context import ENCRYPTED_EXTENSION, encrypted_path
from hostbackup.define import OPENSSL_PASSPHRASE_ENV, PBKDF2_ITERATIONS, KeyDerivation
from hostbackup.file_handler import MockFileSystem


class EncryptionHandler(metaclass=ABCMeta):
    @property
    @abstractmethod
    def extension(self) -> str:
        raise NotImplementedError()

    @abstractmethod
    def encrypt(self, filepath: Path) -> CommandResult:
        """Encrypts the given file to `<filepath><extension>`.

        The input file is left in place.

        Args:
            filepath: The file to encrypt.

        Returns:
            The result of the encryption command.
        """
        raise NotImplementedError()

    def decrypt(self, filepath: Path, output: Path) -> CommandResult:
        raise NotImplementedError()


class OpensslEncryptor(EncryptionHandler):
    """AES-256-CBC with a passphrase derived key, `openssl enc`"""

    def __init__(
        self,
        runner: CommandRunner,
        passphrase: str,
        kdf: KeyDerivation = "pbkdf2",
    ) -> None:
        self._runner = runner
        self._passphrase = passphrase
        self._kdf = kdf

    @property
    def extension(self) -> str:
        return ENCRYPTED_EXTENSION

    @property
    def key_options(self) -> list[str]:
        match self._kdf:
            case "pbkdf2":
                return ["-md", "sha256", "-pbkdf2", "-iter", str(PBKDF2_ITERATIONS)]
            case "legacy-sha1":
                # single round EVP_BytesToKey, readable by old restore scripts
                return ["-md", "sha1"]
            case _:
                raise ValueError(f"Unknown key derivation: {self._kdf}")

    def encrypt(self, filepath: Path) -> CommandResult:
        return self.__openssl("-e", filepath, encrypted_path(filepath))

    def decrypt(self, filepath: Path, output: Path) -> CommandResult:
        return self.__openssl("-d", filepath, output)

    def __openssl(self, mode: str, src: Path, dest: Path) -> CommandResult:
        return self._runner.run(
            [
                "openssl",
                "enc",
                mode,
                "-aes-256-cbc",
                "-salt",
                *self.key_options,
                "-in",
                str(src),
                "-out",
                str(dest),
                "-pass",
                f"env:{OPENSSL_PASSPHRASE_ENV}",
            ],
            env={OPENSSL_PASSPHRASE_ENV: self._passphrase},
        )


class MockEncryptor(EncryptionHandler):
    def __init__(self, file_system: MockFileSystem, fail: bool = False) -> None:
        self._file_system = file_system
        self.fail = fail

    @property
    def extension(self) -> str:
        return ENCRYPTED_EXTENSION

    def encrypt(self, filepath: Path) -> CommandResult:
        out_filepath = encrypted_path(filepath)
        args = ("openssl", "enc", "-e", str(filepath), str(out_filepath))

        if not self._file_system.check_file(filepath):
            return CommandResult(args, 1, "", f"Can't open {filepath} for reading")

        if self.fail:
            self._file_system.save(out_filepath, b"Salted__")
            return CommandResult(args, 1, "", "error writing output file")

        self._file_system.save(out_filepath, {"ciphertext": self._file_system.read(filepath)})
        return CommandResult(args, 0)

    def decrypt(self, filepath: Path, output: Path) -> CommandResult:
        args = ("openssl", "enc", "-d", str(filepath), str(output))
        if filepath.suffix != self.extension:
            return CommandResult(args, 1, "", "bad magic number")

        self._file_system.save(output, self._file_system.read(filepath)["ciphertext"])
        return CommandResult(args, 0)
