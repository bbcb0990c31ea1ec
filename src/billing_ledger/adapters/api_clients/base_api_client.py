from __future__ import annotations

from typing import Any, TypeVar
from urllib.parse import urljoin

import requests
import structlog
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class BaseAPIClient:
    """
    Utilitário HTTP com:
      • sessão com cabeçalhos padrão e timeout obrigatório
      • POST JSON sem retry de transporte (quem chama decide, via idempotency key)
      • parse + validação Pydantic
    """

    def __init__(
        self,
        *,
        base_url: str,
        default_headers: dict[str, str] | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.log = structlog.get_logger(__name__).bind(component=type(self).__name__)
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout

        self.log.debug("client.configured", base_url=self.base_url, timeout=timeout)

        self.session = requests.Session()
        if default_headers:
            self.session.headers.update(default_headers)

    def _url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    # --------------------------------------------------------------------- HTTP POST --
    def _post(
        self,
        path: str,
        *,
        payload: dict[str, Any],
        response_model: type[T],
        headers: dict[str, str] | None = None,
    ) -> T:
        """Executa POST e retorna objeto Pydantic já validado."""
        url = self._url(path)
        log = self.log.bind(method="POST", url=url, model=response_model.__name__)
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
            log.debug("http.response", status_code=resp.status_code)
            resp.raise_for_status()
            result = response_model.model_validate(resp.json())
            log.info("http.post_ok")
            return result
        except Exception as exc:
            log.error("http.post_failed", error=str(exc))
            raise
