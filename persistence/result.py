from typing import Any, Generic, Iterable, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ResultError(BaseModel):
    """A single keyed error carried by a Result."""
    key: str
    message: str = ""


class Result(BaseModel, Generic[T]):
    """Outcome of a repository call: a payload or one-or-more keyed errors, never both expected."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    result_object: Optional[T] = None
    errors: List[ResultError] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def add_error(self, key: str, message: str = "") -> "Result[T]":
        self.errors.append(ResultError(key=key, message=message))
        return self

    def add_errors(self, errors: Iterable[ResultError]) -> "Result[T]":
        self.errors.extend(errors)
        return self

    def add_localized_error(self, localizer, key: str, *args: Any) -> "Result[T]":
        """Add an error whose message is resolved from the localizer catalog."""
        return self.add_error(key, localizer(key, *args))

    def has_error(self, key: str) -> bool:
        return any(error.key == key for error in self.errors)

    @staticmethod
    def success(result_object: Any = None) -> "Result":
        return Result(result_object=result_object)

    @staticmethod
    def fail(key: str, message: str = "", result_object: Any = None) -> "Result":
        return Result(result_object=result_object).add_error(key, message)
