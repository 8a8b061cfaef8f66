# CogniLab/server.py
import os
import uuid
import asyncio
import logging
import json
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from pydantic import BaseModel, Field

from cognilab import __version__
from cognilab.circuit_domain.circuit import CompositionSnapshot
from cognilab.service import LabService
from cognilab.validation.scoring import validate_composition

logger = logging.getLogger("server")


class CompositionBody(BaseModel):
    placements: list = Field(default_factory=list)
    connections: list = Field(default_factory=list)


class ValidateRequest(BaseModel):
    candidate: CompositionBody
    reference: CompositionBody
    totalSteps: int = Field(0, ge=0)
    completedSteps: int = Field(0, ge=0)


def create_app(service: Optional[LabService] = None) -> FastAPI:
    """
    创建编辑服务。service 为 None 时在第一次请求时按 config.yaml / .env 构建。
    """
    state: Dict[str, Any] = {"service": service}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if state["service"] is not None:
            await state["service"].aclose()

    app = FastAPI(title="CogniLab Circuit Editor API", version=__version__, lifespan=lifespan)
    active_websockets: Dict[str, WebSocket] = {}

    def get_service() -> LabService:
        if state["service"] is None:
            logger.info("首次请求，按默认配置创建 LabService...")
            state["service"] = LabService(config_yaml_path="config.yaml", dotenv_path=".env")
        return state["service"]

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "catalog_size": len(get_service().catalog)}

    @app.get("/api/catalog")
    async def catalog() -> list:
        return get_service().catalog.to_list()

    @app.post("/api/validate")
    async def validate(body: ValidateRequest) -> Dict[str, Any]:
        if body.completedSteps > body.totalSteps:
            raise HTTPException(status_code=422, detail="completedSteps 不能大于 totalSteps。")
        try:
            candidate = CompositionSnapshot.from_dict(body.candidate.model_dump())
            reference = CompositionSnapshot.from_dict(body.reference.model_dump())
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"/api/validate 收到无效的电路数据: {e!r}")
            raise HTTPException(status_code=422, detail=f"无效的电路数据: {e}") from e
        report = validate_composition(
            candidate.placements, candidate.connections,
            reference.placements, reference.connections,
            body.totalSteps, body.completedSteps,
        )
        logger.info(f"/api/validate 评分完成: {report.score}% (通过: {report.is_valid})")
        return report.to_dict()

    @app.websocket("/ws/lab")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        client_addr = f"{websocket.client.host if websocket.client else '未知'}:{websocket.client.port if websocket.client else '未知'}"
        logger.info(f"WebSocket 连接已接受 (来自: {client_addr}).")

        lab_service = get_service()
        session_id: Optional[str] = None
        pending: Set[asyncio.Task] = set()
        send_lock = asyncio.Lock()

        async def send(payload: Dict[str, Any]) -> None:
            if websocket.client_state.name != "CONNECTED":
                logger.warning(f"尝试发送消息到 Session {session_id or 'N/A'} 但WebSocket状态为 {websocket.client_state.name}。")
                return
            async with send_lock:
                await websocket.send_json(payload)

        async def run_command(sid: str, request_id: str, name: str, arguments: Any) -> None:
            try:
                result = await lab_service.execute(sid, name, arguments)
            except Exception as e:
                logger.error(f"Session {sid} 执行命令 '{name}' 时发生顶层错误: {e}", exc_info=True)
                result = {"status": "failure", "message": "处理命令时服务器内部发生了错误。",
                          "error": {"error_type": "UNEXPECTED_COMMAND_ERROR", "error_code": "SERVER_ERROR",
                                    "technical_message": str(e)}}
            try:
                await send({"type": "command_result", "request_id": request_id, "name": name, **result})
            except (WebSocketDisconnect, RuntimeError):
                logger.warning(f"Session {sid} 发送命令 '{name}' 的结果时WebSocket已断开。")

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Session {session_id or '未知'} 收到非JSON格式或无效JSON消息: {data[:100]}...")
                    await send({"type": "error", "message": "服务器收到无效消息格式,请发送JSON.", "details": f"原始消息(部分): {data[:100]}"})
                    continue
                if not isinstance(message, dict):
                    await send({"type": "error", "message": "消息必须是JSON对象."})
                    continue

                msg_type = message.get("type")
                if msg_type == "init":
                    lab_id = message.get("lab_id")
                    if not isinstance(lab_id, str) or not lab_id.strip():
                        await send({"type": "init_error", "message": "init 消息必须包含有效的 lab_id."})
                        continue
                    requested_id = message.get("session_id")
                    if isinstance(requested_id, str) and requested_id.strip():
                        session_id = requested_id.strip()
                    else:
                        session_id = str(uuid.uuid4())
                        logger.info(f"收到WebSocket初始化消息,未提供有效session_id,生成新的: {session_id}")
                    try:
                        handle = await lab_service.open_session(session_id, lab_id.strip(), message.get("mode", "author"))
                    except Exception as e:
                        logger.error(f"Session {session_id} 初始化失败: {e}", exc_info=True)
                        await send({"type": "init_error", "session_id": session_id, "message": f"会话初始化失败: {e}"})
                        session_id = None
                        continue
                    active_websockets[session_id] = websocket
                    await send({
                        "type": "init_success",
                        "session_id": session_id,
                        "lab": handle.session.to_dict(),
                        "commands": handle.executor.list_commands(),
                    })
                    logger.info(f"Session {session_id} WebSocket初始化成功 (实验 '{handle.session.lab_id}')。")

                elif msg_type == "command":
                    if not session_id:
                        await send({"type": "error", "message": "会话未初始化,请先发送有效的 'init' 消息."})
                        continue
                    name = message.get("name")
                    if not isinstance(name, str) or not name:
                        await send({"type": "error", "message": "command 消息必须包含命令名称 'name'."})
                        continue
                    request_id = message.get("request_id") or f"req_{str(uuid.uuid4())[:8]}"
                    # 每条命令一个任务，保存进行中时接收循环仍能处理后续编辑
                    task = asyncio.create_task(run_command(session_id, request_id, name, message.get("arguments") or {}))
                    pending.add(task)
                    task.add_done_callback(pending.discard)

                else:
                    logger.warning(f"Session {session_id or '未知'} 收到未知消息类型: '{msg_type}'.")
                    await send({"type": "error", "message": f"服务器收到未知消息类型: '{msg_type}'"})

        except WebSocketDisconnect as e:
            logger.info(f"Session {session_id or '未知'} WebSocket连接已断开: code={e.code}")
        finally:
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            if session_id and active_websockets.get(session_id) is websocket:
                del active_websockets[session_id]
            logger.info(f"Session {session_id or '未知'} WebSocket连接处理结束 (客户端: {client_addr}).")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    server_logger = logging.getLogger("server_main")
    if not os.path.exists("config.yaml"):
        server_logger.warning("警告: 未找到 config.yaml，设备目录将为空，存储使用内存实现。")

    uvicorn.run(
        "server:app",
        host=os.environ.get("COGNILAB_HOST", "127.0.0.1"),
        port=int(os.environ.get("COGNILAB_PORT", "8000")),
        reload=False,
        log_level="info",
    )
