"""Submission outcomes returned instead of raised.

The orchestrator reports every expected failure as ``Err(SubmissionError)``;
callers branch with ``isinstance`` and unwrap the side they expect.
"""

from typing import TYPE_CHECKING, Any, Generic, NoReturn, TypeVar

from attrs import frozen

T = TypeVar("T")
E = TypeVar("E")


@frozen
class Ok(Generic[T]):
    """Successful outcome."""

    value: T

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ValueError(f"Expected a failure, got {self.value!r}")


@frozen
class Err(Generic[E]):
    """Failed outcome."""

    error: E

    def unwrap(self) -> NoReturn:
        raise ValueError(f"Expected a success, got {self.error}")

    def unwrap_err(self) -> E:
        return self.error


if TYPE_CHECKING:
    Result = Ok[T] | Err[E]
else:

    class Result(Generic[T, E]):
        """Annotation-only alias; ``Result[T, E]`` evaluates to ``Ok | Err``."""

        def __class_getitem__(cls, params: Any) -> Any:
            return Ok[Any] | Err[Any]
