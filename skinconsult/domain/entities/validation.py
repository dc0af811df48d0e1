from dataclasses import dataclass
from enum import Enum


class IssueKind(str, Enum):
    forbidden_product = "forbidden-product"
    missing_link = "missing-link"
    foreign_url = "foreign-url"
    incomplete_routine_step = "incomplete-routine-step"
    generic_reference = "generic-reference"


BLOCKING_ISSUES = frozenset(
    {
        IssueKind.forbidden_product,
        IssueKind.missing_link,
        IssueKind.foreign_url,
        IssueKind.incomplete_routine_step,
    }
)


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    detail: str

    @property
    def blocking(self) -> bool:
        return self.kind in BLOCKING_ISSUES
