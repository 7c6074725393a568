"""Excepciones propias de lrcsync."""


class LrcSyncError(Exception):
    """Excepción base de lrcsync."""
    pass


class ValidationError(LrcSyncError):
    """Entrada del usuario inválida (letra vacía, LRC sin líneas, etc.)."""
    pass


class NoSyncedLinesError(ValidationError):
    """El texto LRC no contiene ninguna línea sincronizada."""

    def __init__(self, message: str = "no synchronized lines detected"):
        super().__init__(message)


class ForbiddenError(LrcSyncError):
    """El usuario no tiene permisos para la operación."""
    pass


class TimelineStateError(LrcSyncError):
    """Operación no permitida en el estado actual del timeline."""
    pass


class IncompleteTimelineError(TimelineStateError):
    """Se intentó confirmar un timeline con líneas sin sincronizar."""
    pass


class StorageError(LrcSyncError):
    """Error leyendo o escribiendo letras en el almacenamiento."""
    pass


class ConfigError(LrcSyncError):
    """Configuración inválida."""
    pass
