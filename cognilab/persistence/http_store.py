# CogniLab/cognilab/persistence/http_store.py
import time
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..circuit_domain.components import PlacementInstance, WireConnection, ExperimentStep
from .store import LabStore, PersistenceError, placement_payload, connection_payload

logger = logging.getLogger(__name__)


class HttpLabStore(LabStore):
    """
    通过存储服务的 REST 接口保存实验数据。

        PUT {base_url}/labs/{lab_id}/equipments   -> {"labEquipments": [{"id": ...}, ...]}
        PUT {base_url}/labs/{lab_id}/connections  -> {"wireConnections": [...]} (可选)
        PUT {base_url}/labs/{lab_id}/steps
        GET {base_url}/labs/{lab_id}

    所有网络错误、超时和非 2xx 响应都转换为 PersistenceError。
    """
    def __init__(self,
                 base_url: str,
                 api_token: Optional[str] = None,
                 timeout_seconds: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not base_url:
            raise ValueError("HttpLabStore 需要有效的 base_url。")
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.base_url: str = base_url.rstrip("/")
        self.timeout_seconds: float = float(timeout_seconds)
        self._client = httpx.AsyncClient(base_url=self.base_url, headers=headers,
                                         timeout=self.timeout_seconds, transport=transport)
        logger.info(f"[HttpLabStore] 初始化存储客户端。Base URL: {self.base_url}, 超时: {self.timeout_seconds}s。")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json_body: Any = None) -> Any:
        start_time = time.monotonic()
        try:
            response = await self._client.request(method, path, json=json_body)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"[HttpLabStore] {method} {path} 超时 (配置超时: {self.timeout_seconds}s)。")
            raise PersistenceError(f"{method} {path} 在 {self.timeout_seconds}s 后超时。") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"[HttpLabStore] {method} {path} 返回 HTTP {e.response.status_code}。")
            raise PersistenceError(f"{method} {path} 失败: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"[HttpLabStore] {method} {path} 请求失败: {e}")
            raise PersistenceError(f"{method} {path} 请求失败: {e}") from e

        logger.debug(f"[HttpLabStore] {method} {path} 完成，耗时: {time.monotonic() - start_time:.3f} 秒。")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(f"{method} {path} 返回的不是有效的 JSON。") from e

    async def persist_placements(self, lab_id: str, placements: List[PlacementInstance]) -> List[str]:
        body = await self._request("PUT", f"/labs/{lab_id}/equipments",
                                   [placement_payload(p) for p in placements])
        records = body.get("labEquipments") if isinstance(body, dict) else None
        if not isinstance(records, list):
            raise PersistenceError("保存设备的响应中缺少 'labEquipments' 列表。")
        try:
            return [str(record["id"]) for record in records]
        except (KeyError, TypeError) as e:
            raise PersistenceError("保存设备的响应中存在缺少 'id' 的记录。") from e

    async def persist_connections(self, lab_id: str, connections: List[WireConnection]) -> Optional[List[str]]:
        body = await self._request("PUT", f"/labs/{lab_id}/connections",
                                   [connection_payload(c) for c in connections])
        records = body.get("wireConnections") if isinstance(body, dict) else None
        if not isinstance(records, list):
            return None
        ids = [record.get("id") for record in records if isinstance(record, dict)]
        if len(ids) != len(records) or not all(ids):
            return None
        return [str(i) for i in ids]

    async def persist_steps(self, lab_id: str, steps: List[ExperimentStep]) -> None:
        await self._request("PUT", f"/labs/{lab_id}/steps", [step.to_dict() for step in steps])

    async def load_lab(self, lab_id: str) -> Dict[str, List[Dict[str, Any]]]:
        body = await self._request("GET", f"/labs/{lab_id}")
        if body is None:
            body = {}
        elif not isinstance(body, dict):
            raise PersistenceError(f"加载实验 '{lab_id}' 的响应不是 JSON 对象 (而是 {type(body).__name__})。")
        return {
            "labEquipments": body.get("labEquipments") or [],
            "wireConnections": body.get("wireConnections") or [],
            "experimentSteps": body.get("experimentSteps") or [],
        }
