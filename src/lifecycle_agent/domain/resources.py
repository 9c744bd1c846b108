"""Typed views over the cluster objects the agent reads and writes."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..ports.cluster import GroupVersionResource
from .conditions import (
    Condition,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    find_status_condition,
    set_status_condition,
)
from .phase import InProgressStage, Phase, classify_phase

MSG_SEEDGEN_FAILED = "Seed generation failed"
MSG_SEEDGEN_COMPLETED = "Seed Generation completed"

SEEDGEN_GVR = GroupVersionResource("lca.openshift.io", "v1", "seedgenerators")
SECRET_GVR = GroupVersionResource("", "v1", "secrets")


class KubeModel(BaseModel):
    """Base for cluster objects: camelCase on the wire, unknown keys kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_object(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ObjectMeta(KubeModel):
    name: str
    namespace: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    resource_version: str = ""
    generation: int = 0
    uid: str = ""


class SeedGeneratorSpec(KubeModel):
    seed_image: str = ""
    recert_image: str = ""


class SeedGeneratorStatus(KubeModel):
    observed_generation: int = 0
    conditions: list[Condition] = Field(default_factory=list)
    stage: InProgressStage | None = None


class SeedGenerator(KubeModel):
    """The singleton seed generation request."""

    gvr: ClassVar[GroupVersionResource] = SEEDGEN_GVR

    api_version: str = SEEDGEN_GVR.api_version
    kind: str = "SeedGenerator"
    metadata: ObjectMeta
    spec: SeedGeneratorSpec = Field(default_factory=SeedGeneratorSpec)
    status: SeedGeneratorStatus = Field(default_factory=SeedGeneratorStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def phase(self) -> Phase:
        conditions = self.status.conditions
        return classify_phase(
            find_status_condition(conditions, ConditionType.IN_PROGRESS),
            find_status_condition(conditions, ConditionType.COMPLETED),
            self.status.stage,
        )

    def condition(self, condition_type: ConditionType) -> Condition | None:
        return find_status_condition(self.status.conditions, condition_type)

    # ── Status transitions ───────────────────────────────────────────

    def set_in_progress(self, message: str, stage: InProgressStage) -> None:
        set_status_condition(
            self.status.conditions,
            ConditionType.IN_PROGRESS,
            ConditionReason.IN_PROGRESS,
            ConditionStatus.TRUE,
            message,
            self.metadata.generation,
        )
        self.status.stage = stage

    def set_failed(self, message: str) -> None:
        set_status_condition(
            self.status.conditions,
            ConditionType.COMPLETED,
            ConditionReason.FAILED,
            ConditionStatus.FALSE,
            f"{MSG_SEEDGEN_FAILED}: {message}",
            self.metadata.generation,
        )
        set_status_condition(
            self.status.conditions,
            ConditionType.IN_PROGRESS,
            ConditionReason.FAILED,
            ConditionStatus.FALSE,
            message,
            self.metadata.generation,
        )
        self.status.stage = None

    def set_completed(self) -> None:
        for condition_type, status in (
            (ConditionType.IN_PROGRESS, ConditionStatus.FALSE),
            (ConditionType.COMPLETED, ConditionStatus.TRUE),
        ):
            set_status_condition(
                self.status.conditions,
                condition_type,
                ConditionReason.COMPLETED,
                status,
                MSG_SEEDGEN_COMPLETED,
                self.metadata.generation,
            )
        self.status.stage = None


class Secret(KubeModel):
    """A secret with its values already decoded to text."""

    gvr: ClassVar[GroupVersionResource] = SECRET_GVR

    api_version: str = "v1"
    kind: str = "Secret"
    metadata: ObjectMeta
    data: dict[str, str] = Field(default_factory=dict)
    type: str | None = None
