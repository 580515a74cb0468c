class ForestConfigError(ValueError):
    """Invalid tree or forest hyperparameters, raised before any tree is grown."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidStateError(RuntimeError):
    """An engine operation was invoked on a node or tree in a state that forbids it."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)
