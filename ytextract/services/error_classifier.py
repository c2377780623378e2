from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    NOT_FOUND = "not_found"
    PRIVATE = "private"
    GEO_RESTRICTED = "geo_restricted"
    AGE_RESTRICTED = "age_restricted"
    PURCHASE_REQUIRED = "purchase_required"
    COMMUNITY_GUIDELINE_VIOLATION = "community_guideline_violation"
    TERMS_OF_SERVICE_VIOLATION = "terms_of_service_violation"
    ACCOUNT_TERMINATED = "account_terminated"
    REMOVED_BY_UPLOADER = "removed_by_uploader"
    COPYRIGHT_CLAIM = "copyright_claim"
    UNVIEWABLE = "unviewable"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class FailureSignal:
    status: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    raw_text: str
    claimant: str | None = None

    @property
    def is_unclassified(self) -> bool:
        return self.category is ErrorCategory.UNCLASSIFIED

    @property
    def unlockable_by_alternate_context(self) -> bool:
        return self.category in _ALTERNATE_CONTEXT_CATEGORIES

    def describe(self) -> str:
        if self.category is ErrorCategory.COPYRIGHT_CLAIM and self.claimant:
            return f"{self.category.value} (claimant={self.claimant}): {self.raw_text}"
        return f"{self.category.value}: {self.raw_text}"


@dataclass(frozen=True)
class _ReasonTemplate:
    category: ErrorCategory
    prefix: str
    suffix: str | None = None

    def match(self, text: str, raw_text: str) -> ClassifiedError | None:
        if self.suffix is None:
            if text != self.prefix:
                return None
            return ClassifiedError(category=self.category, raw_text=raw_text)

        if not (text.startswith(self.prefix) and text.endswith(self.suffix)):
            return None
        captured = text[len(self.prefix) : len(text) - len(self.suffix)].strip()
        if not captured:
            return None
        return ClassifiedError(category=self.category, raw_text=raw_text, claimant=captured)


LOGGER = logging.getLogger("ytextract.classifier")

_ALTERNATE_CONTEXT_CATEGORIES: frozenset[ErrorCategory] = frozenset(
    {ErrorCategory.AGE_RESTRICTED}
)

# Reason texts are compared after trimming whitespace and a single trailing period.
# Order matters: the first matching template wins.
REASON_TEMPLATES: tuple[_ReasonTemplate, ...] = (
    _ReasonTemplate(ErrorCategory.NOT_FOUND, "This video is unavailable"),
    _ReasonTemplate(ErrorCategory.NOT_FOUND, "Video unavailable"),
    _ReasonTemplate(ErrorCategory.NOT_FOUND, "This video isn't available anymore"),
    _ReasonTemplate(ErrorCategory.NOT_FOUND, "[Deleted video]"),
    _ReasonTemplate(ErrorCategory.NOT_FOUND, "The playlist does not exist"),
    _ReasonTemplate(ErrorCategory.NOT_FOUND, "This channel does not exist"),
    _ReasonTemplate(ErrorCategory.PRIVATE, "This video is private"),
    _ReasonTemplate(ErrorCategory.PRIVATE, "Private video"),
    _ReasonTemplate(ErrorCategory.PRIVATE, "[Private video]"),
    _ReasonTemplate(
        ErrorCategory.GEO_RESTRICTED,
        "The uploader has not made this video available in your country",
    ),
    _ReasonTemplate(ErrorCategory.GEO_RESTRICTED, "This video is not available in your country"),
    _ReasonTemplate(ErrorCategory.AGE_RESTRICTED, "Sign in to confirm your age"),
    _ReasonTemplate(
        ErrorCategory.AGE_RESTRICTED,
        "This video may be inappropriate for some users",
    ),
    _ReasonTemplate(
        ErrorCategory.AGE_RESTRICTED,
        "This video is age-restricted and only available on YouTube",
    ),
    _ReasonTemplate(ErrorCategory.PURCHASE_REQUIRED, "This video requires payment to watch"),
    _ReasonTemplate(
        ErrorCategory.PURCHASE_REQUIRED,
        "Join this channel to get access to members-only content like this video, "
        "and other exclusive perks",
    ),
    _ReasonTemplate(
        ErrorCategory.COMMUNITY_GUIDELINE_VIOLATION,
        "This video has been removed for violating YouTube's Community Guidelines",
    ),
    _ReasonTemplate(
        ErrorCategory.COMMUNITY_GUIDELINE_VIOLATION,
        "This video has been removed for violating YouTube's policy on nudity or sexual content",
    ),
    _ReasonTemplate(
        ErrorCategory.COMMUNITY_GUIDELINE_VIOLATION,
        "This video has been removed for violating YouTube's policy on harassment and bullying",
    ),
    _ReasonTemplate(
        ErrorCategory.COMMUNITY_GUIDELINE_VIOLATION,
        "This video has been removed for violating YouTube's policy on violent or graphic content",
    ),
    _ReasonTemplate(
        ErrorCategory.TERMS_OF_SERVICE_VIOLATION,
        "This video has been removed for violating YouTube's Terms of Service",
    ),
    _ReasonTemplate(
        ErrorCategory.ACCOUNT_TERMINATED,
        "This video is no longer available because the YouTube account associated with "
        "this video has been terminated",
    ),
    _ReasonTemplate(
        ErrorCategory.ACCOUNT_TERMINATED,
        "This account has been terminated for a violation of YouTube's Terms of Service",
    ),
    _ReasonTemplate(
        ErrorCategory.ACCOUNT_TERMINATED,
        "This video is no longer available because the uploader has closed their YouTube account",
    ),
    _ReasonTemplate(ErrorCategory.REMOVED_BY_UPLOADER, "This video has been removed by the uploader"),
    _ReasonTemplate(
        ErrorCategory.COPYRIGHT_CLAIM,
        "This video is no longer available due to a copyright claim by ",
        suffix="",
    ),
    _ReasonTemplate(
        ErrorCategory.COPYRIGHT_CLAIM,
        "This video contains content from ",
        suffix=", who has blocked it in your country on copyright grounds",
    ),
    _ReasonTemplate(
        ErrorCategory.COPYRIGHT_CLAIM,
        "This video contains content from ",
        suffix=", who has blocked it on copyright grounds",
    ),
    _ReasonTemplate(ErrorCategory.UNVIEWABLE, "This playlist type is unviewable"),
    _ReasonTemplate(ErrorCategory.UNVIEWABLE, "This video is unavailable on this device"),
    _ReasonTemplate(
        ErrorCategory.UNVIEWABLE,
        "Playback on other websites has been disabled by the video owner",
    ),
)

# Used only when upstream sends a status without any reason text.
STATUS_ONLY_CATEGORIES: dict[str, ErrorCategory] = {
    "AGE_VERIFICATION_REQUIRED": ErrorCategory.AGE_RESTRICTED,
    "AGE_CHECK_REQUIRED": ErrorCategory.AGE_RESTRICTED,
    "CONTENT_CHECK_REQUIRED": ErrorCategory.AGE_RESTRICTED,
    "LIVE_STREAM_OFFLINE": ErrorCategory.UNVIEWABLE,
}


def classify(signal: FailureSignal | str) -> ClassifiedError:
    if isinstance(signal, str):
        signal = FailureSignal(reason=signal)

    raw_reason = signal.reason.strip() if signal.reason is not None else None
    reason = _normalize_reason(raw_reason)
    status = _normalize_status(signal.status)

    if reason is not None:
        for template in REASON_TEMPLATES:
            classified = template.match(reason, raw_reason or reason)
            if classified is not None:
                return classified
        return _unclassified(raw_reason or reason, status=status)

    if status is not None:
        category = STATUS_ONLY_CATEGORIES.get(status)
        if category is not None:
            return ClassifiedError(category=category, raw_text=status)
        return _unclassified(status, status=status)

    return _unclassified("", status=None)


def _unclassified(raw_text: str, *, status: str | None) -> ClassifiedError:
    LOGGER.error(
        "unrecognized upstream failure text status=%s raw_text=%r",
        status,
        raw_text,
    )
    return ClassifiedError(category=ErrorCategory.UNCLASSIFIED, raw_text=raw_text)


def _normalize_reason(raw_reason: str | None) -> str | None:
    if raw_reason is None:
        return None
    normalized = " ".join(raw_reason.split())
    if normalized.endswith("."):
        normalized = normalized[:-1].rstrip()
    return normalized or None


def _normalize_status(raw_status: str | None) -> str | None:
    if raw_status is None:
        return None
    normalized = raw_status.strip().upper()
    return normalized or None
