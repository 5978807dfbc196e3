from i18n import tr


class EngineError(Exception):
    """Base class for failures of a block operation.

    Raised inside the engine and turned into a failed ``OperationResult`` at the
    public entry points; never propagated to the caller.
    """

    kind = "error"

    def __init__(self, key: str, **params):
        self.key = key
        self.params = params
        super().__init__(tr(key, **params))


class NotFoundError(EngineError):
    kind = "not-found"


class StructuralError(EngineError):
    kind = "structural"


class EmptyInputError(EngineError):
    kind = "empty-input"


class InvalidValueError(EngineError):
    kind = "invalid-value"
