from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from ..core.errors import StoreError
from ..core.model import GroupingTuple, PolicyTuple
from .rows import format_rows, parse_rows

logger = logging.getLogger("orgacl.storage.s3")


_S3_URL_RE = re.compile(r"^s3://(?P<bucket>[^/]+)/(?P<key>.+)$")


@dataclass(frozen=True)
class _S3Location:
    bucket: str
    key: str


def _parse_s3_url(url: str) -> _S3Location:
    """
    Parse s3://bucket/key into (_S3Location). Raises ValueError on invalid input.
    """
    m = _S3_URL_RE.match(url)
    if not m:
        raise ValueError(f"Invalid S3 URL: {url!r} (expected s3://bucket/key)")
    return _S3Location(bucket=m.group("bucket"), key=m.group("key"))


class S3PolicyStore:
    """
    Policy store backed by a CSV object in Amazon S3.

    Change detection (``change_detector``):
      - "etag"       : HeadObject ETag (default).
      - "version_id" : HeadObject VersionId (requires bucket versioning); falls back to ETag.

    The client is built with connect/read timeouts and standard retries, so a
    slow bucket bounds the load/reload path instead of hanging it. Override with
    `botocore_config` or extra `client_params`.

    The object is fetched once per ``refresh()`` (or lazily on first read); the
    enforcer reads policies and groupings from that single fetch.
    """

    def __init__(
        self,
        url: str,
        *,
        change_detector: Literal["etag", "version_id"] = "etag",
        session: Any | None = None,  # boto3.session.Session | None
        botocore_config: Any | None = None,  # botocore.config.Config | None
        client_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.loc = _parse_s3_url(url)
        self.url = url
        self.change_detector = change_detector
        self._client = self._build_client(session, botocore_config, client_params or {})
        self._lock = threading.RLock()
        self._rows: Optional[Tuple[List[PolicyTuple], List[GroupingTuple]]] = None

    # --------------------------------------------------------------------- #
    # Client setup
    # --------------------------------------------------------------------- #

    @staticmethod
    def _build_client(session: Any | None, cfg: Any | None, extra: Dict[str, Any]) -> Any:
        """
        Create a boto3 S3 client with sensible defaults:
          - connect/read timeouts
          - standard retry mode with a few attempts
        """
        try:
            import boto3  # type: ignore
            from botocore.config import Config  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "S3PolicyStore requires boto3 and botocore. "
                "Install with: pip install orgacl[s3]"
            ) from e

        if cfg is None:
            cfg = Config(
                retries={"max_attempts": 4, "mode": "standard"},
                connect_timeout=3,
                read_timeout=8,
            )

        if session is None:
            session = boto3.session.Session()  # type: ignore[attr-defined]

        return session.client("s3", config=cfg, **extra)

    # --------------------------------------------------------------------- #
    # PolicyStore interface
    # --------------------------------------------------------------------- #

    def etag(self) -> Optional[str]:
        if self.change_detector == "version_id":
            vid = self._head_field("VersionId")
            if vid is not None:
                return f"vid:{vid}"
        etag = self._head_field("ETag")
        if etag is None:
            return None
        return "etag:" + etag.strip('"')

    def refresh(self) -> None:
        """Fetch and parse the object, replacing the cached rows."""
        body = self._get_object_text()
        parsed = parse_rows(body, source=self.url)
        with self._lock:
            self._rows = parsed

    def load_policies(self) -> List[PolicyTuple]:
        # A policy read starts a load cycle; groupings come from the same fetch.
        self.refresh()
        return list(self._cached()[0])

    def load_groupings(self) -> List[GroupingTuple]:
        return list(self._cached()[1])

    def has_grouping(self, role: str, permission: str) -> bool:
        return GroupingTuple(role, permission) in self._cached()[1]

    def add_grouping(self, role: str, permission: str) -> bool:
        with self._lock:
            policies, groupings = self._cached()
            edge = GroupingTuple(role, permission)
            if edge in groupings:
                return False
            self.save(policies, groupings + [edge])
            return True

    def save(self, policies: Iterable[PolicyTuple], groupings: Iterable[GroupingTuple]) -> None:
        policies = list(policies)
        groupings = list(groupings)
        body = format_rows(policies, groupings).encode("utf-8")
        try:
            self._client.put_object(
                Bucket=self.loc.bucket,
                Key=self.loc.key,
                Body=body,
                ContentType="text/csv",
            )
        except Exception as e:
            raise StoreError(f"cannot write {self.url}: {e}") from e
        with self._lock:
            self._rows = (policies, groupings)
        logger.debug("ORGACL: policy object saved to %s", self.url)

    # --------------------------------------------------------------------- #
    # S3 calls
    # --------------------------------------------------------------------- #

    def _cached(self) -> Tuple[List[PolicyTuple], List[GroupingTuple]]:
        with self._lock:
            if self._rows is None:
                self.refresh()
            assert self._rows is not None
            return self._rows

    def _head_field(self, name: str) -> Optional[str]:
        try:
            resp = self._client.head_object(Bucket=self.loc.bucket, Key=self.loc.key)
        except self._client.exceptions.NoSuchKey:
            return None
        value = resp.get(name)
        return value if isinstance(value, str) and value else None

    def _get_object_text(self) -> str:
        try:
            resp = self._client.get_object(Bucket=self.loc.bucket, Key=self.loc.key)
        except Exception as e:
            raise StoreError(f"cannot read {self.url}: {e}") from e
        # Streaming body must be fully read and closed.
        body = resp["Body"].read()
        resp["Body"].close()
        return body.decode("utf-8")


__all__ = ["S3PolicyStore"]
