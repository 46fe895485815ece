"""
Domain errors raised by the service layer. Blueprints turn these into a
flash + redirect (pages) or a JSON error payload (autosave).
"""
from __future__ import annotations


class ApplicationError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ApplicationNotFound(ApplicationError):
    def __init__(self, message: str = "Application not found") -> None:
        super().__init__(message)


class ApplicationLocked(ApplicationError):
    def __init__(self, message: str = "Only draft applications can be modified") -> None:
        super().__init__(message)


class StepIncomplete(ApplicationError):
    def __init__(self, message: str = "Please complete all steps before submitting") -> None:
        super().__init__(message)


class WizardValidationError(ApplicationError):
    def __init__(self, errors: dict[str, str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.errors = errors


class NumberAllocationError(ApplicationError):
    pass


class LoanError(ApplicationError):
    pass


class ReceiptError(ApplicationError):
    pass
