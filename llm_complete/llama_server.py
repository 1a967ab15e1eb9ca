"""Streaming completion client for llama-server (llama.cpp).

Uses the native /completion endpoint with ``stream: true``; tokens arrive
as server-sent events (``data: {...}`` lines).  The server can either be
running already or be launched here and owned for the lifetime of one
session.  A session serves exactly one stream and is disposed once.
"""

import asyncio
import json
import logging
import subprocess
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import aiohttp

from . import config
from .errors import StreamError

log = logging.getLogger(__name__)

# on_token(index, text) -> keep going?
TokenCallback = Callable[[int, str], bool]

_DONE = object()


@dataclass(frozen=True)
class Token:
    index: int
    text: str


@dataclass
class GenerationSettings:
    """Sampling parameters forwarded verbatim to the server."""

    n_predict: int = config.PREDICT
    temperature: float = config.TEMPERATURE
    top_k: int = config.TOP_K
    top_p: float = config.TOP_P
    min_p: float = config.MIN_P
    repeat_penalty: float = config.REPEAT_PENALTY
    repeat_last_n: int = config.REPEAT_LAST_N

    def to_payload(self, prompt: str) -> dict:
        return {
            "prompt": prompt,
            "n_predict": self.n_predict,
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "min_p": self.min_p,
            "repeat_penalty": self.repeat_penalty,
            "repeat_last_n": self.repeat_last_n,
            "cache_prompt": True,
            "stream": True,
        }


def parse_event(raw: bytes):
    """Parse one SSE line. Returns a dict, _DONE, or None for non-data lines."""
    line = raw.decode("utf-8", errors="replace").strip()
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if data == "[DONE]":
        return _DONE
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        log.warning("llama-server sent malformed event: %s", data[:200])
        return None
    if not isinstance(event, dict):
        log.warning("llama-server sent non-object event: %s", data[:200])
        return None
    return event


def build_server_command(
    model_path: str = config.MODEL_PATH,
    host: str = config.LLM_HOST,
    port: int = config.LLM_PORT,
    ctx: int = config.CTX,
    device: str = config.DEVICE,
    ngl: int = config.NGL,
    binary: str = config.LLM_SERVER_BIN,
) -> list[str]:
    cmd = [
        binary,
        "-m", model_path,
        "-c", str(ctx),
        "--host", host,
        "--port", str(port),
    ]
    if device == "cpu":
        cmd += ["-ngl", "0"]
    else:
        cmd += ["-ngl", str(ngl)]
        # "gpu" lets the server pick; anything else is a device name
        if device != "gpu":
            cmd += ["--device", device]
    return cmd


class LlamaServer:
    """Model session backed by a llama-server instance."""

    def __init__(
        self,
        host: str = config.LLM_HOST,
        port: int = config.LLM_PORT,
        autostart: bool = config.LLM_SERVER_AUTOSTART,
        startup_timeout: float = config.LLM_SERVER_STARTUP_TIMEOUT,
        request_timeout: float = config.LLM_REQUEST_TIMEOUT,
        command: Optional[list[str]] = None,
    ):
        self._base_url = "http://%s:%d" % (host, port)
        self._autostart = autostart
        self._startup_timeout = startup_timeout
        self._request_timeout = request_timeout
        self._command = command
        self._session: aiohttp.ClientSession | None = None
        self._proc: subprocess.Popen | None = None
        self._available = False
        self._streamed = False
        self._disposed = False

    def _url(self, path: str) -> str:
        return self._base_url + path

    @property
    def available(self) -> bool:
        return self._available

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def start(self):
        """Open the HTTP session; launch the server first if configured to."""
        connector = aiohttp.TCPConnector(limit_per_host=1, limit=2)
        self._session = aiohttp.ClientSession(connector=connector)
        try:
            if self._autostart:
                await self._launch()
            else:
                await self._check_health()
            if not self._available:
                raise StreamError("llama-server not reachable at %s" % self._base_url)
        except BaseException:
            await self.dispose()
            raise

    async def _check_health(self):
        """Check if llama-server is responding and has a model loaded."""
        try:
            async with self._session.get(
                self._url("/health"),
                timeout=aiohttp.ClientTimeout(total=5),
            ) as resp:
                self._available = resp.status == 200
                if self._available:
                    log.info("llama-server available at %s", self._base_url)
                else:
                    log.debug("llama-server health check returned %d", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            self._available = False
            log.debug("llama-server not reachable at %s", self._base_url)

    async def _launch(self):
        cmd = self._command or build_server_command()
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise StreamError("could not launch %s: %s" % (cmd[0], exc)) from exc
        log.info("llama-server started (pid %d): %s", self._proc.pid, " ".join(cmd))

        deadline = time.monotonic() + self._startup_timeout
        while time.monotonic() < deadline:
            if self._proc.poll() is not None:
                raise StreamError(
                    "llama-server exited during startup (code %d)" % self._proc.returncode
                )
            await self._check_health()
            if self._available:
                return
            await asyncio.sleep(0.5)
        raise StreamError(
            "llama-server not ready after %.0fs" % self._startup_timeout
        )

    async def stream(
        self,
        prompt: str,
        settings: GenerationSettings | None = None,
        on_token: TokenCallback | None = None,
    ) -> AsyncIterator[Token]:
        """Stream completion tokens for ``prompt``.

        ``on_token`` is consulted before each token is handed out; returning
        False ends the stream.  Leaving the ``async with`` closes the
        connection, which makes the server stop generating.
        """
        if self._session is None or self._disposed:
            raise RuntimeError("LlamaServer session is not open")
        if self._streamed:
            raise RuntimeError("LlamaServer session already streamed")
        self._streamed = True

        payload = (settings or GenerationSettings()).to_payload(prompt)
        index = 0
        try:
            async with self._session.post(
                self._url("/completion"),
                json=payload,
                timeout=aiohttp.ClientTimeout(total=None, sock_read=self._request_timeout),
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise StreamError(
                        "llama-server returned %d: %s" % (resp.status, body[:200])
                    )

                async for raw in resp.content:
                    event = parse_event(raw)
                    if event is None:
                        continue
                    if event is _DONE:
                        break
                    if "error" in event:
                        raise StreamError("llama-server error: %s" % event["error"])

                    text = event.get("content", "")
                    if text:
                        if on_token is not None and not on_token(index, text):
                            log.info("Stream stopped by caller after %d tokens", index)
                            break
                        yield Token(index, text)
                        index += 1

                    if event.get("stop"):
                        log.debug(
                            "Stream finished: %d tokens (%s)",
                            index, event.get("stop_type", "stop"),
                        )
                        break
        except aiohttp.ClientError as exc:
            raise StreamError("llama-server stream failed: %s" % exc) from exc
        except asyncio.TimeoutError as exc:
            raise StreamError(
                "llama-server timed out (%.0fs read limit)" % self._request_timeout
            ) from exc

    async def dispose(self):
        """Release the HTTP session and any owned server process. Runs once."""
        if self._disposed:
            return
        self._disposed = True
        self._available = False
        if self._session:
            try:
                await self._session.close()
            except Exception:
                log.exception("Error closing llama-server session")
            self._session = None
        if self._proc is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._stop_server)

    def _stop_server(self):
        pid = self._proc.pid
        self._proc.terminate()
        try:
            self._proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._proc.kill()
            self._proc.wait(timeout=2)
        self._proc = None
        log.info("llama-server stopped (was pid %d)", pid)
