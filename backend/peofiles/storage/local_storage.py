from pathlib import Path, PurePosixPath
from peofiles.core.errors import StorageFault


class LocalStorage:
    """Bytes on disk under upload_dir/{office}/{adjuster}/{name}"""

    def __init__(self, upload_dir: str):
        self.upload_dir = Path(upload_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def relative_path(office: str, adjuster: str, filename: str) -> str:
        """Path stored in the metadata row, always with forward slashes"""
        return str(PurePosixPath(office, adjuster, filename))

    def get_file_path(self, relative_path: str) -> Path:
        """Get full path to a file, refusing anything outside upload_dir"""
        file_path = (self.upload_dir / relative_path).resolve()
        if not file_path.is_relative_to(self.upload_dir):
            raise StorageFault(f"Refusing path outside upload directory: {relative_path}")
        return file_path

    def save_bytes(self, office: str, adjuster: str, filename: str, content: bytes) -> str:
        """
        Write content and return its relative path.

        An existing file is never overwritten, another record may own it.
        """
        relative_path = self.relative_path(office, adjuster, filename)
        file_path = self.get_file_path(relative_path)
        try:
            # Directories are created on demand per office and adjuster
            file_path.parent.mkdir(parents=True, exist_ok=True)
            f = open(file_path, "xb")
        except FileExistsError as e:
            raise StorageFault(f"File already exists: {relative_path}") from e
        except OSError as e:
            raise StorageFault("Failed to save file") from e
        try:
            with f:
                f.write(content)
        except OSError as e:
            # Drop the half-written file, it belongs to nobody
            file_path.unlink(missing_ok=True)
            raise StorageFault("Failed to save file") from e
        return relative_path

    def read_bytes(self, relative_path: str) -> bytes:
        file_path = self.get_file_path(relative_path)
        try:
            with open(file_path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise
        except OSError as e:
            raise StorageFault("Failed to read file") from e

    def delete_file(self, relative_path: str) -> bool:
        """
        Delete a file. Returns False when it was already missing, raises
        StorageFault when it is there but could not be removed.
        """
        file_path = self.get_file_path(relative_path)
        try:
            file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageFault(f"Failed to delete file {relative_path}: {str(e)}") from e
        return True
