from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Report:
    """Write-once snapshot of class or student aggregates."""

    id: UUID
    snapshot: Any
    generated_by: UUID | None
    created_at: datetime
    class_id: UUID | None = None
    student_id: UUID | None = None

    @staticmethod
    def new(
        *,
        snapshot: Any,
        generated_by: UUID | None,
        class_id: UUID | None = None,
        student_id: UUID | None = None,
    ) -> Report:
        return Report(
            id=uuid4(),
            snapshot=snapshot,
            generated_by=generated_by,
            created_at=datetime.now(UTC),
            class_id=class_id,
            student_id=student_id,
        )
