"""
portal_empleado.source.receipts
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Remote receipt source: finds the payroll JSON for one (cuil, period) in an
object store, skipping the download when the caller's validators still
match.

Key naming has drifted over the years (dashed vs. plain CUILs, ``202601``
vs. ``2026-01`` folders), so every combination of identity and period
variants is substituted into the configured template and the resulting
keys are tried in order until one exists.

Template tokens (matched case-insensitively):

    {cuil}           identity variant (digits, then dashed)
    {cuil_digits}    always digits only
    {period}         period variant (YYYYMM, then YYYY-MM)
    {period_token}   same as {period}
    {period_id}      always YYYY-MM
    {period_folder}  folder variant (YYYYMM, then YYYY-MM)
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..config import SourceConfig
from ..exceptions import ConfigurationError, ObjectStoreError
from ..models import Downloaded, FetchResult, NotFound, NotModified, SourceDisabled
from ..utils import normalize_cuil, normalize_etag, normalize_value, to_dashed_cuil
from .transport import MISSING, ObjectStore

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# ---------------------------------------------------------------------------
# Candidate keys
# ---------------------------------------------------------------------------

def _dedupe(values: List[str]) -> List[str]:
    """Order-preserving, case-insensitive de-duplication."""
    seen: set[str] = set()
    out: List[str] = []
    for v in values:
        folded = v.casefold()
        if v and folded not in seen:
            seen.add(folded)
            out.append(v)
    return out


def _substitute(template: str, values: Dict[str, str]) -> str:
    for token, value in values.items():
        template = re.sub(re.escape(token), lambda _m: value, template, flags=re.IGNORECASE)
    return template


def build_candidate_keys(
    template: str,
    cuil: str,
    year: int,
    month: int,
    prefix: str = "",
) -> List[str]:
    """
    Every object key worth trying for the given identity and period.

    Returns an empty list when ``cuil`` holds no digits.
    """
    digits = normalize_cuil(cuil)
    if not digits:
        return []

    period_token = f"{year:04d}{month:02d}"
    period_id = f"{year:04d}-{month:02d}"
    cuil_variants = _dedupe([digits, to_dashed_cuil(digits)])
    period_variants = _dedupe([period_token, period_id])

    prefix = (prefix or "").strip().rstrip("/")
    keys: List[str] = []
    for cuil_variant in cuil_variants:
        for token in period_variants:
            for folder in period_variants:
                relative = _substitute(template, {
                    "{cuil}":          cuil_variant,
                    "{cuil_digits}":   digits,
                    "{period}":        token,
                    "{period_token}":  token,
                    "{period_id}":     period_id,
                    "{period_folder}": folder,
                })
                key = f"{prefix}/{relative.lstrip('/')}" if prefix else relative.lstrip("/")
                if key.strip():
                    keys.append(key)
    return _dedupe(keys)


def _is_not_modified(
    known_etag: Optional[str],
    known_version_id: Optional[str],
    etag: Optional[str],
    version_id: Optional[str],
) -> bool:
    known_version_id = normalize_value(known_version_id)
    if known_version_id is not None and known_version_id == version_id:
        return True
    known_etag = normalize_etag(known_etag)
    return known_etag is not None and known_etag == etag


# ---------------------------------------------------------------------------
# Store factory
# ---------------------------------------------------------------------------

def build_object_store(config: SourceConfig) -> ObjectStore:
    """Instantiate the transport named by ``config.backend``."""
    if config.backend == "local":
        from .local import LocalObjectStore

        if config.local_data_dir is None:
            raise ConfigurationError("Local receipt source needs local_data_dir")
        return LocalObjectStore(config.local_data_dir)
    if config.backend == "s3":
        from .s3 import S3ObjectStore

        return S3ObjectStore(
            bucket=config.bucket,
            region=config.region or None,
            endpoint_url=config.endpoint_url,
        )
    raise ConfigurationError(f"Unknown receipt source backend: {config.backend!r}")


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class ReceiptSource:
    """
    Conditional fetch of payroll payloads from an ``ObjectStore``.

    All calls block; the service runs them on a worker thread.
    """

    def __init__(self, config: SourceConfig, store: Optional[ObjectStore] = None) -> None:
        self._config = config
        if store is None and config.is_usable:
            store = build_object_store(config)
        self._store = store

    @property
    def config(self) -> SourceConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.is_usable and self._store is not None

    def candidate_keys(self, cuil: str, year: int, month: int) -> List[str]:
        return build_candidate_keys(
            self._config.key_template, cuil, year, month, prefix=self._config.prefix,
        )

    def fetch_period(
        self,
        cuil: str,
        year: int,
        month: int,
        known_etag: Optional[str] = None,
        known_version_id: Optional[str] = None,
    ) -> FetchResult:
        """
        Look up the period's payload.

        Returns ``SourceDisabled`` without touching the store when the source
        is switched off, ``NotModified`` when a candidate's validators match
        the known ones, ``Downloaded`` for the first candidate that exists
        and ``NotFound`` when every candidate is missing or failing.
        """
        store = self._store
        if store is None or not self._config.is_usable:
            logger.warning("Receipt source is disabled or its location is missing.")
            return SourceDisabled()

        keys = self.candidate_keys(cuil, year, month)
        if not keys:
            return NotFound()

        for key in keys:
            try:
                self._trace("Checking metadata %s key=%s", store.describe(), key)
                meta = store.head(key)
                if meta is MISSING:
                    self._trace("Key not found: %s", key)
                    continue

                etag = normalize_etag(meta.etag)
                version_id = normalize_value(meta.version_id)
                if _is_not_modified(known_etag, known_version_id, etag, version_id):
                    logger.info(
                        "Receipt source not modified for %04d-%02d key=%s etag=%s version=%s",
                        year, month, key, etag, version_id,
                    )
                    return NotModified(source_key=key, etag=etag, version_id=version_id)

                self._trace("Downloading %s key=%s", store.describe(), key)
                obj = store.get(key)
                if obj is MISSING:
                    # Deleted between the two requests.
                    self._trace("Key vanished before download: %s", key)
                    continue
                payload = obj.body.decode("utf-8-sig")
            except ObjectStoreError as exc:
                logger.warning("Receipt source error for key %s: %s", key, exc)
                continue
            except UnicodeDecodeError as exc:
                logger.warning("Receipt object %s is not UTF-8 text: %s", key, exc)
                continue

            etag = normalize_etag(obj.resolved_etag) or etag
            version_id = normalize_value(obj.version_id) or version_id
            logger.info(
                "Receipt downloaded from %s key=%s etag=%s version=%s",
                store.describe(), key, etag, version_id,
            )
            return Downloaded(
                payload_json=payload,
                downloaded_at=datetime.now(timezone.utc),
                source_key=key,
                etag=etag,
                version_id=version_id,
            )

        logger.warning(
            "Receipt source found nothing for %04d-%02d in %s (%d keys tried)",
            year, month, store.describe(), len(keys),
        )
        return NotFound()

    def _trace(self, msg: str, *args) -> None:
        level = logging.INFO if self._config.trace_searches else logging.DEBUG
        logger.log(level, msg, *args)
