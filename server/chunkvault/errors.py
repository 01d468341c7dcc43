"""Типизированные ошибки chunkvault."""


class ChunkVaultError(Exception):
    """Базовое исключение chunkvault."""


class BackendError(ChunkVaultError):
    """Сбой обращения к KV-хранилищу (сеть, таймаут, закрытая транзакция)."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation}: {detail}")


class StructuralError(ChunkVaultError, ValueError):
    """Набор чанков или метаданные не позволяют собрать blob."""

    def __init__(self, message: str, missing: tuple[int, ...] = ()) -> None:
        self.missing = missing
        super().__init__(message)


class EmptyBlobError(ChunkVaultError, ValueError):
    """Пустой blob не записывается."""


class BlobNotFoundError(ChunkVaultError):
    """Метаданные blob отсутствуют."""

    def __init__(self, blob_key: str) -> None:
        self.blob_key = blob_key
        super().__init__(f"Blob не найден: {blob_key}")


class BlobCorruptError(ChunkVaultError):
    """Метаданные есть, но текущую версию собрать нельзя."""

    def __init__(self, blob_key: str, reason: str, missing: tuple[int, ...] = ()) -> None:
        self.blob_key = blob_key
        self.reason = reason
        self.missing = missing
        super().__init__(f"Blob {blob_key} повреждён: {reason}")
