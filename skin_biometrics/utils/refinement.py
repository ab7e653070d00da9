"""
Client side of the external AI refinement service.

The local pipeline always produces a complete record first. Refinement is
an optional asynchronous second opinion: its answer is schema-validated,
clamped to local bounds and merged over the local record. A timeout,
transport failure or malformed answer never fails the scan; the caller gets
the local record back with a soft status explaining why.
"""
import asyncio
import base64
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import ValidationError

from ..models.refinement_schema import RefinementRequest, RefinementResponse
from ..models.skin_metrics import SCORE_FIELDS, WIRE_NAMES, clamp_score, round_half_up
from .image_preprocessing import enhance_for_review
from .stabilization import RECENCY_WINDOW_MS, InMemoryAnalysisCache

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0
HISTORY_EXCERPT_LIMIT = 5
OFFLINE_SUMMARY = "Offline Analysis: Based on computer vision metrics only."
DEFAULT_SUMMARY = "Analysis Complete"


class RefinementError(Exception):
    """Base exception for refinement service failures"""
    pass


class RefinementTimeoutError(RefinementError):
    """The service did not answer in time"""
    pass


class RefinementValidationError(RefinementError):
    """The service answered with something that is not a valid result"""
    def __init__(self, message, raw_content=""):
        super().__init__(message)
        self.raw_content = raw_content


class RefinementService(Protocol):
    async def refine(self, request: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HttpRefinementService:
    """
    JSON-over-HTTP refinement endpoint

    Parameters:
    ----------
    url : str
        Endpoint receiving the POSTed request body
    api_key : str, optional
        Sent as a bearer token
    timeout_seconds : float
        Transport-level timeout
    client : httpx.AsyncClient, optional
        Pre-configured client (tests pass one with a mock transport)
    """
    def __init__(self, url, api_key=None, timeout_seconds=DEFAULT_TIMEOUT_SECONDS, client=None):
        self.url = url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _headers(self):
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, client, request):
        try:
            response = await client.post(self.url, json=request, headers=self._headers())
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RefinementTimeoutError(f"Refinement request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise RefinementError(f"Refinement request failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise RefinementValidationError("Refinement response is not JSON", response.text) from e

    async def refine(self, request):
        if self._client is not None:
            return await self._post(self._client, request)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await self._post(client, request)


class RefinementStatus(str, Enum):
    REFINED = "refined"
    CACHED = "cached"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"
    FAILED = "failed"
    INVALID = "invalid"


@dataclass(frozen=True)
class RefinementOutcome:
    """Final record plus a soft status describing how it was obtained."""
    metrics: Any
    status: RefinementStatus
    detail: Optional[str] = None
    stability_rating: Optional[int] = None

    @property
    def refined(self):
        return self.status in (RefinementStatus.REFINED, RefinementStatus.CACHED)


def round_to_five(value):
    return round_half_up(value / 5.0) * 5


def local_reference(metrics):
    """Local scores rounded to the nearest 5, in wire naming."""
    return {WIRE_NAMES[name]: round_to_five(getattr(metrics, name)) for name in SCORE_FIELDS}


def merge_refinement(local, response):
    """
    Merge a validated refinement over the local record

    Refined scores are clamped to the metric range; attributes the service
    left out keep their local value.

    Parameters:
    ----------
    local : SkinMetrics
        Locally computed record
    response : RefinementResponse
        Validated service answer

    Returns:
    -------
    SkinMetrics
    """
    scores = {}
    for name in SCORE_FIELDS:
        value = getattr(response, name)
        scores[name] = clamp_score(value) if value is not None else getattr(local, name)

    return replace(
        local,
        **scores,
        skin_age=response.skin_age if response.skin_age is not None else local.skin_age,
        analysis_summary=response.analysis_summary or DEFAULT_SUMMARY,
        observations=dict(response.observations),
    )


def offline_metrics(local):
    return replace(local, analysis_summary=OFFLINE_SUMMARY, observations=dict(local.observations))


class ScanRefiner:
    """
    Local analysis followed by an optional refinement round trip

    Parameters:
    ----------
    analyzer : SkinAnalyzer
        Local pipeline; its consistency protocol and cache are reused
    service : RefinementService, optional
        Collaborator; without one every scan falls back to local metrics
    timeout_seconds : float
        Upper bound on the whole refinement call
    history_window_ms : int
        Only history entries this recent are shared with the service
    history_limit : int
        Maximum number of shared history entries
    refined_cache : AnalysisCache, optional
        Fingerprint store holding refined records only. Local records the
        analyzer cached are never served as refined.
    """
    def __init__(self,
                 analyzer,
                 service=None,
                 timeout_seconds=DEFAULT_TIMEOUT_SECONDS,
                 history_window_ms=RECENCY_WINDOW_MS,
                 history_limit=HISTORY_EXCERPT_LIMIT,
                 refined_cache=None):
        self.analyzer = analyzer
        self.service = service
        self.timeout_seconds = timeout_seconds
        self.history_window_ms = history_window_ms
        self.history_limit = history_limit
        self.refined_cache = refined_cache if refined_cache is not None else InMemoryAnalysisCache()

    @property
    def protocol(self):
        return self.analyzer.protocol

    def build_request(self, frame, local, history=None):
        """Request body: enhanced image, rounded local scores, recent history."""
        now = self.protocol.clock()
        excerpt = []
        minutes = None
        if history is not None and len(history):
            excerpt = [m.to_payload() for m in history.recent(self.history_window_ms, now, self.history_limit)]
            anchor = self.protocol.find_anchor(history, now)
            if anchor is not None:
                minutes = round(anchor.elapsed_minutes, 1)

        image = base64.b64encode(enhance_for_review(frame).to_jpeg_bytes()).decode('ascii')
        request = RefinementRequest(
            image=image,
            local_metrics=local_reference(local),
            history=excerpt,
            minutes_since_last_scan=minutes,
        )
        return request.model_dump(by_alias=True)

    async def _call_service(self, request):
        raw = await asyncio.wait_for(self.service.refine(request), timeout=self.timeout_seconds)
        if not isinstance(raw, dict):
            raise RefinementValidationError("Refinement response is not a JSON object", repr(raw)[:200])
        return RefinementResponse.model_validate(raw)

    async def refine(self, frame, history=None):
        """
        Analyze a frame and refine the result

        Parameters:
        ----------
        frame : RasterFrame
            Frame to analyze
        history : ScanHistory, optional
            Subject's previous scans

        Returns:
        -------
        RefinementOutcome
            Always carries a complete record; ``status`` says whether the
            service contributed to it
        """
        frame = self.analyzer._as_frame(frame)
        fingerprint = frame.fingerprint()

        cached = self.refined_cache.get(fingerprint)
        if cached is not None:
            logger.info("Returning cached refinement for fingerprint %s", fingerprint[:12])
            return RefinementOutcome(cached.with_timestamp(self.protocol.clock()), RefinementStatus.CACHED)

        local = self.analyzer.measure(frame)

        if self.service is None:
            metrics = self.protocol.stabilize(offline_metrics(local), history)
            return RefinementOutcome(metrics, RefinementStatus.SKIPPED, "No refinement service configured")

        request = self.build_request(frame, local, history)

        try:
            response = await self._call_service(request)
        except (asyncio.TimeoutError, RefinementTimeoutError) as e:
            logger.warning("Refinement timed out after %.1fs, using local metrics", self.timeout_seconds)
            return self._fallback(local, history, RefinementStatus.TIMEOUT, str(e) or "timeout")
        except (ValidationError, RefinementValidationError) as e:
            logger.warning("Refinement response rejected: %s", e)
            return self._fallback(local, history, RefinementStatus.INVALID, str(e))
        except (RefinementError, httpx.HTTPError, OSError) as e:
            logger.error("Refinement failed: %s", e)
            return self._fallback(local, history, RefinementStatus.FAILED, str(e))

        merged = merge_refinement(local, response)
        final = self.protocol.stabilize(merged, history, response.stability_rating)
        self.refined_cache.put(fingerprint, final)
        self.protocol.cache.put(fingerprint, final)
        return RefinementOutcome(final, RefinementStatus.REFINED, stability_rating=response.stability_rating)

    def _fallback(self, local, history, status, detail):
        # Fallbacks are not cached so a later scan can still be refined
        metrics = self.protocol.stabilize(offline_metrics(local), history)
        return RefinementOutcome(metrics, status, detail)
