"""Exceptions related to olm-bundle."""

__all__ = [
    "BundleException",
    "InputException",
    "UnsupportedKindError",
]


class BundleException(Exception):
    """Generic base exception used for this library."""


class InputException(BundleException):
    """Raised when the input files or values are not formatted as expected."""


class UnsupportedKindError(InputException):
    """Raised when the source stream contains a kind with no explicit handling."""

    def __init__(self, kind: str | None, name: str | None) -> None:
        super().__init__(
            "UNSUPPORTED KIND - you must explicitly ignore it or handle it: "
            f"{kind} {name}"
        )
        self.kind = kind
        self.name = name
