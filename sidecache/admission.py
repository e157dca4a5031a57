"""
SideCache — Admission policy.

Decides whether a freshly produced response may be stored.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable

from .response import Response

logger = logging.getLogger("sidecache.admission")

DEFAULT_CACHEABLE_STATUS_CODES: FrozenSet[int] = frozenset({200})


class AdmissionPolicy:
    """
    Storage eligibility rules. All must pass:

    1. the status code is in ``cacheable_status_codes``;
    2. the response does not carry a ``Vary`` header containing ``*``
       (it varies unpredictably and can never be replayed safely);
    3. the request method is ``GET``, unless ``bypass_method_check``.

    The policy is stateless; evaluating it repeatedly on the same
    response gives the same answer.
    """

    __slots__ = ("_cacheable_status_codes", "_bypass_method_check")

    def __init__(
        self,
        cacheable_status_codes: Iterable[int] = DEFAULT_CACHEABLE_STATUS_CODES,
        bypass_method_check: bool = False,
    ):
        self._cacheable_status_codes = frozenset(cacheable_status_codes)
        self._bypass_method_check = bypass_method_check

    @property
    def cacheable_status_codes(self) -> FrozenSet[int]:
        return self._cacheable_status_codes

    @property
    def bypass_method_check(self) -> bool:
        return self._bypass_method_check

    def is_cacheable_status(self, status: int) -> bool:
        return status in self._cacheable_status_codes

    @staticmethod
    def varies_unpredictably(response: Response) -> bool:
        """True when the response has ``Vary: *``."""
        vary = response.headers.get("vary")
        return vary is not None and "*" in vary

    def is_cacheable_method(self, method: str) -> bool:
        return self._bypass_method_check or method.upper() == "GET"

    def admit(self, response: Response, method: str) -> bool:
        """Whether ``response`` to a ``method`` request may be stored."""
        if not self.is_cacheable_status(response.status):
            logger.debug(f"Not caching: status {response.status} not cacheable")
            return False
        if self.varies_unpredictably(response):
            logger.debug("Not caching: response has Vary: *")
            return False
        if not self.is_cacheable_method(method):
            logger.debug(f"Not caching: method {method} not cacheable")
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"AdmissionPolicy(cacheable_status_codes={sorted(self._cacheable_status_codes)}, "
            f"bypass_method_check={self._bypass_method_check})"
        )
