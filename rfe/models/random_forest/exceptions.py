from sklearn.exceptions import NotFittedError


class RandomForestError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(RandomForestError, ValueError):
    """Invalid configuration or input; ``errors`` lists every violated constraint."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = list(errors) if errors else [message]
        super().__init__(message)


class NotTrainedError(RandomForestError, NotFittedError):
    pass


class NumericError(RandomForestError, ArithmeticError):
    pass


class TrainingError(RandomForestError, RuntimeError):
    pass


class TrainingCancelledError(RandomForestError):
    pass
