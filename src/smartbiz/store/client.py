from typing import Any, Dict, List, Optional

import requests

from ..errors import StoreError
from ..logging import get_logger


class StoreClient:
    """Thin client for a Supabase PostgREST endpoint with session, timeouts, and logging.

    Only implements the subset we use: select all rows of a table with one
    ordering, insert one row, update/delete rows matched by column equality.
    Rows are scoped to the signed-in user by the database's RLS policies, so
    every request carries the user's access token.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        access_token: Optional[str] = None,
        *,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.timeout = int(timeout)
        self.log = get_logger("store-client")
        self.s = session or requests.Session()
        self.s.headers.update({
            "apikey": anon_key,
            "Authorization": f"Bearer {access_token or anon_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    # ---------- helpers ----------
    def _url(self, table: str) -> str:
        return f"{self.base}/rest/v1/{table}"

    @staticmethod
    def _eq(match: Dict[str, Any]) -> Dict[str, str]:
        return {col: f"eq.{value}" for col, value in match.items()}

    def _send(self, method: str, table: str, **kwargs: Any) -> Any:
        try:
            r = self.s.request(method, self._url(table), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            self.log.error(f"{method} {table} failed: {e}")
            raise StoreError(f"Network error talking to the database: {e}") from e
        try:
            body = r.json() if r.content else None
        except ValueError:
            body = None
        if r.status_code >= 400:
            err = StoreError.from_body(r.status_code, body)
            self.log.error(f"{method} {table} returned {r.status_code}: code={err.code} {err.message}")
            raise err
        return body

    # ---------- rows ----------
    def select(self, table: str, *, order: Optional[str] = None, ascending: bool = True) -> List[Dict[str, Any]]:
        params = {"select": "*"}
        if order:
            params["order"] = f"{order}.{'asc' if ascending else 'desc'}"
        body = self._send("GET", table, params=params)
        return body if isinstance(body, list) else []

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return the stored representation."""
        body = self._send("POST", table, json=row, headers={"Prefer": "return=representation"})
        if isinstance(body, list) and body and isinstance(body[0], dict):
            return body[0]
        if isinstance(body, dict):
            return body
        raise StoreError(f"Insert into {table} returned no row")

    def update(self, table: str, values: Dict[str, Any], match: Dict[str, Any]) -> None:
        self._send("PATCH", table, params=self._eq(match), json=values, headers={"Prefer": "return=minimal"})

    def delete(self, table: str, match: Dict[str, Any]) -> None:
        self._send("DELETE", table, params=self._eq(match))

    def set_access_token(self, access_token: str) -> None:
        self.s.headers["Authorization"] = f"Bearer {access_token}"

    def close(self) -> None:
        self.s.close()
