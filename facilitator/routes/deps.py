from fastapi import Request, WebSocket

from facilitator.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_ws_container(websocket: WebSocket) -> Container:
    return websocket.app.state.container
