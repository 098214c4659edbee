"""FHIR Bundle wire schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FHIR_MEDIA_TYPES = frozenset({"application/fhir+json", "application/json"})


class FhirBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class BundleLink(FhirBaseModel):
    relation: str
    url: str


class BundleEntryRequest(FhirBaseModel):
    method: Literal["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH"]
    url: str


class BundleEntrySearch(FhirBaseModel):
    mode: Literal["match", "include", "outcome"] | None = None


class BundleEntryResponse(FhirBaseModel):
    status: str
    location: str | None = None
    last_modified: str | None = Field(default=None, alias="lastModified")


class BundleEntry(FhirBaseModel):
    full_url: str | None = Field(default=None, alias="fullUrl")
    resource: dict[str, Any] | None = None
    request: BundleEntryRequest | None = None
    search: BundleEntrySearch | None = None
    response: BundleEntryResponse | None = None


class Bundle(FhirBaseModel):
    resource_type: Literal["Bundle"] = Field(default="Bundle", alias="resourceType")
    type: str
    total: int | None = None
    link: list[BundleLink] = Field(default_factory=list[BundleLink])
    entry: list[BundleEntry] = Field(default_factory=list[BundleEntry])

    def next_url(self) -> str | None:
        for link in self.link:
            if link.relation == "next":
                return link.url
        return None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class OperationOutcomeIssue(FhirBaseModel):
    severity: str | None = None
    code: str | None = None
    diagnostics: str | None = None


class OperationOutcome(FhirBaseModel):
    resource_type: Literal["OperationOutcome"] = Field(alias="resourceType")
    issue: list[OperationOutcomeIssue] = Field(default_factory=list[OperationOutcomeIssue])

    def describe(self) -> str:
        return "; ".join(
            issue.diagnostics or issue.code or "unknown issue" for issue in self.issue
        )
