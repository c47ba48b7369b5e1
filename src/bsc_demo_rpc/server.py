# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .dispatcher import RPCDispatcher

logger = logging.getLogger("bsc_demo_rpc.server")


class DemoCORSMiddleware(CORSMiddleware):
    """CORS middleware whose preflight answers carry an empty body."""

    def preflight_response(self, request_headers):
        response = super().preflight_response(request_headers)
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=response.status_code, headers=headers)


# The frontend posts to /api/rpc; plain JSON-RPC clients use the root.
RPC_PATHS = ("/", "/api/rpc")


def create_app(dispatcher: Optional[RPCDispatcher] = None) -> FastAPI:
    """Builds the HTTP app around one dispatcher, i.e. one ledger per process."""
    if dispatcher is None:
        dispatcher = RPCDispatcher.from_settings(Settings.from_env())

    app = FastAPI(title="BSC Demo RPC")
    app.state.dispatcher = dispatcher
    app.add_middleware(
        DemoCORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    async def handle_rpc(request: Request) -> JSONResponse:
        """Handles JSON-RPC requests."""
        body = await request.body()
        # Upstream lookups block, so keep them off the event loop.
        content = await run_in_threadpool(dispatcher.handle_body, body)
        return JSONResponse(content=content)

    async def preflight() -> Response:
        return Response(status_code=200)

    for path in RPC_PATHS:
        app.add_api_route(path, handle_rpc, methods=["POST"])
        app.add_api_route(path, preflight, methods=["OPTIONS"])

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "chainId": hex(dispatcher.settings.chain_id)}

    return app


app = create_app()


def run_demo_rpc(host: str = "127.0.0.1", port: int = 8545, log_level: str = "info"):
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def main():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Starting demo BSC node on {settings.host}:{settings.port}")
    run_demo_rpc(settings.host, settings.port, settings.log_level)


if __name__ == "__main__":
    main()
