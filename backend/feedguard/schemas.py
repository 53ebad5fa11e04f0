# feedguard/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedguard.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_REMOTE_MODEL,
    DEFAULT_REMOTE_TEMPERATURE,
    DEFAULT_TICK_INTERVAL_MS,
    RUNTIME_LIMITS,
)
from feedguard.utils import clamp_number

ANALYSIS_MODE_LOCAL = "local"
ANALYSIS_MODE_REMOTE = "remote-assisted"
# Older option pages stored the remote mode as "llm"
_MODE_ALIASES = {"llm": ANALYSIS_MODE_REMOTE, "remote": ANALYSIS_MODE_REMOTE}


def _clamped(name: str, value: Any, fallback: float, integer: bool = True):
    low, high = RUNTIME_LIMITS[name]
    number = clamp_number(value, low, high, fallback)
    return int(round(number)) if integer else float(number)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def wire_keys(model_cls: type[BaseModel], data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rewrite snake_case field names in a (partial) payload to their camelCase aliases.

    Nested model fields are rewritten recursively; unknown keys are kept
    as-is and later ignored by validation.
    """
    fields = {}
    for name, info in model_cls.model_fields.items():
        fields[name] = info
        if info.alias:
            fields[info.alias] = info

    out: Dict[str, Any] = {}
    for key, value in data.items():
        info = fields.get(key)
        if info is None:
            out[key] = value
            continue
        nested = info.annotation
        if isinstance(value, dict) and isinstance(nested, type) and issubclass(nested, BaseModel):
            value = wire_keys(nested, value)
        out[info.alias or key] = value
    return out


# -----------------------------------------------------------------------------
# Runtime configuration
# -----------------------------------------------------------------------------

class UiConfig(_CamelModel):
    """Presentation-layer settings; stored and returned, never read by the pipeline."""

    boot_animation: bool = Field(True, alias="bootAnimation")
    boot_min_show_ms: int = Field(1800, alias="bootMinShowMs")
    boot_max_show_ms: int = Field(6500, alias="bootMaxShowMs")

    @field_validator("boot_min_show_ms", mode="before")
    @classmethod
    def _clamp_min_show(cls, v):
        return _clamped("bootMinShowMs", v, 1800)

    @field_validator("boot_max_show_ms", mode="before")
    @classmethod
    def _clamp_max_show(cls, v):
        return _clamped("bootMaxShowMs", v, 6500)


class RemoteConfig(_CamelModel):
    enabled: bool = False
    credential: str = ""
    model: str = DEFAULT_REMOTE_MODEL
    temperature: float = DEFAULT_REMOTE_TEMPERATURE
    max_output_tokens: int = Field(450, alias="maxOutputTokens")
    candidate_threshold: int = Field(35, alias="candidateThreshold")
    store: bool = False

    @field_validator("credential", mode="before")
    @classmethod
    def _coerce_credential(cls, v):
        return "" if v is None else str(v)

    @field_validator("model", mode="before")
    @classmethod
    def _default_model(cls, v):
        v = str(v or "").strip()
        return v or DEFAULT_REMOTE_MODEL

    @field_validator("temperature", mode="before")
    @classmethod
    def _clamp_temperature(cls, v):
        return _clamped("temperature", v, DEFAULT_REMOTE_TEMPERATURE, integer=False)

    @field_validator("max_output_tokens", mode="before")
    @classmethod
    def _clamp_tokens(cls, v):
        return _clamped("maxOutputTokens", v, 450)

    @field_validator("candidate_threshold", mode="before")
    @classmethod
    def _clamp_candidate(cls, v):
        return _clamped("candidateThreshold", v, 35)


class RuntimeConfig(_CamelModel):
    """Process-wide tunables. Replaced wholesale on every update."""

    enabled: bool = True
    analysis_mode: Literal["local", "remote-assisted"] = Field(ANALYSIS_MODE_LOCAL, alias="analysisMode")
    risk_threshold: int = Field(75, alias="riskThreshold")
    batch_size: int = Field(DEFAULT_BATCH_SIZE, alias="batchSize")
    tick_interval_ms: int = Field(DEFAULT_TICK_INTERVAL_MS, alias="tickIntervalMs")
    debug: bool = False
    ui: UiConfig = Field(default_factory=UiConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)

    @field_validator("analysis_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, v):
        mode = str(v or "").strip().lower()
        mode = _MODE_ALIASES.get(mode, mode)
        return mode if mode in (ANALYSIS_MODE_LOCAL, ANALYSIS_MODE_REMOTE) else ANALYSIS_MODE_LOCAL

    @field_validator("risk_threshold", mode="before")
    @classmethod
    def _clamp_threshold(cls, v):
        return _clamped("riskThreshold", v, 75)

    @field_validator("batch_size", mode="before")
    @classmethod
    def _clamp_batch(cls, v):
        return _clamped("batchSize", v, DEFAULT_BATCH_SIZE)

    @field_validator("tick_interval_ms", mode="before")
    @classmethod
    def _clamp_interval(cls, v):
        return _clamped("tickIntervalMs", v, DEFAULT_TICK_INTERVAL_MS)

    @property
    def escalation_enabled(self) -> bool:
        return self.analysis_mode == ANALYSIS_MODE_REMOTE and self.remote.enabled

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# -----------------------------------------------------------------------------
# RPC requests / responses
# -----------------------------------------------------------------------------

class AnalysisResultOut(BaseModel):
    id: str
    risk: int
    category: str
    tags: List[str] = Field(default_factory=list)
    origin: Literal["local", "remote"]


class ConfigResponse(BaseModel):
    ok: bool = True
    config: Dict[str, Any]
    hasCredential: bool = False


class SetConfigRequest(BaseModel):
    patch: Dict[str, Any] = Field(default_factory=dict)


class PingResponse(BaseModel):
    ok: bool = True
    enabled: bool
    analysisMode: str


class AckResponse(BaseModel):
    ok: bool = True


class EnqueueRequest(BaseModel):
    # Raw scraper payloads; normalized (and malformed ones dropped) in sources.timeline
    posts: List[Any] = Field(default_factory=list)


class EnqueueResponse(BaseModel):
    ok: bool = True
    added: int
    deduped: int
    invalid: int = 0
    dropped: int = 0
    pendingCount: int


class IdsRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


class PrioritizeResponse(BaseModel):
    ok: bool = True
    pendingCount: int


class AnalysisResponse(BaseModel):
    ok: bool = True
    results: Dict[str, AnalysisResultOut]


class LexiconEntrySummary(BaseModel):
    count: int
    sample: List[str]


class LexiconSummaryResponse(BaseModel):
    ok: bool = True
    summary: Dict[str, LexiconEntrySummary]


class LocalClassifyRequest(BaseModel):
    text: str = ""


class LocalClassifyResponse(BaseModel):
    ok: bool = True
    analysis: AnalysisResultOut


class StatsResponse(BaseModel):
    ok: bool = True
    pending: int
    analyzed: int
    snapshots: int
    priority: int
    busy: bool
    scheduledAt: int
    lastDispatchAt: int
    lexiconReady: bool


class TickResponse(BaseModel):
    ok: bool = True
    action: Literal["dispatched", "scheduled", "idle"]
    pending: int = 0
    scheduledAt: Optional[int] = None
