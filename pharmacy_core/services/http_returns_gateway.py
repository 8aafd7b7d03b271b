from __future__ import annotations

import json
import logging
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from pharmacy_core.config import settings
from pharmacy_core.services.return_ports import ReturnLineRequest

logger = logging.getLogger(__name__)

SALES_PATH = '/returns/server/sales/{record_id}'
PURCHASES_PATH = '/returns/server/purchases/{record_id}'


class HttpReturnsGateway:
    def __init__(
        self,
        path_template: str,
        *,
        base_url: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        self.path_template = path_template
        self.base_url = (base_url or settings.returns_api_base_url).rstrip('/')
        self.timeout_seconds = timeout_seconds or settings.returns_api_timeout_seconds
        self.headers = {'Content-Type': 'application/json'}

    def _payload(self, items: list[ReturnLineRequest]) -> dict:
        return {
            'items': [
                {'line_id': item.line_id, 'quantity': item.quantity, 'reason': item.reason.value}
                for item in items
            ]
        }

    def record_return(self, *, record_id: int, items: list[ReturnLineRequest]) -> bool:
        path = self.path_template.format(record_id=record_id)
        req = Request(
            url=f'{self.base_url}{path}',
            data=json.dumps(self._payload(items)).encode('utf-8'),
            headers=self.headers,
            method='POST',
        )
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                return 200 <= response.status < 300
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            logger.warning('Returns API answered %s on %s: %s', exc.code, path, body)
            return False
        except URLError as exc:
            raise ValueError(f'Returns API network error on {path}: {exc.reason}') from exc
