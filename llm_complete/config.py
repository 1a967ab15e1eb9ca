"""llm-complete configuration -- loaded from environment variables."""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
MODEL_DIR = Path(os.getenv("MODEL_DIR", str(BASE_DIR / "models")))

# --- Model ---
# Processing device: "cpu", "gpu" or a llama.cpp device name such as "CUDA0".
# "gpu" lets llama-server pick the best available device.
DEVICE = os.getenv("DEVICE", "gpu")
MODEL = os.getenv("MODEL", "mistral-7b-v0.1.Q4_K_M.gguf")
MODEL_PATH = os.getenv("MODEL_PATH", str(MODEL_DIR / MODEL))
CTX = int(os.getenv("CTX", "2048"))  # 2048 is max for Mistral 7b
NGL = int(os.getenv("NGL", "100"))  # GPU layers, ignored when DEVICE=cpu

# --- llama-server ---
LLM_HOST = os.getenv("LLM_HOST", "127.0.0.1")
LLM_PORT = int(os.getenv("LLM_PORT", "8080"))
LLM_SERVER_BIN = os.getenv("LLM_SERVER_BIN", "llama-server")
LLM_SERVER_AUTOSTART = os.getenv("LLM_SERVER_AUTOSTART", "false").lower() in ("true", "1", "yes")
LLM_SERVER_STARTUP_TIMEOUT = float(os.getenv("LLM_SERVER_STARTUP_TIMEOUT", "120"))
LLM_REQUEST_TIMEOUT = float(os.getenv("LLM_REQUEST_TIMEOUT", "600"))

# --- Generation settings (passed through to the server) ---
PREDICT = int(os.getenv("PREDICT", "128"))  # max tokens to generate
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.7"))
TOP_K = int(os.getenv("TOP_K", "40"))
TOP_P = float(os.getenv("TOP_P", "0.9"))
MIN_P = float(os.getenv("MIN_P", "0.1"))
REPEAT_PENALTY = float(os.getenv("REPEAT_PENALTY", "1.2"))  # 1 = no penalty
REPEAT_LAST_N = int(os.getenv("REPEAT_LAST_N", "64"))

# --- Output pacing ---
BUFFER_AHEAD = int(os.getenv("BUFFER", "30"))  # tokens held back for boundary detection
TAIL_INTERVAL = float(os.getenv("TAIL_INTERVAL", "0.2"))
FLASH_INTERVAL = float(os.getenv("FLASH_INTERVAL", "0.4"))

# Grace period before releasing the model after an interrupted stream.
# llama-server cleans up a slot asynchronously after the client disconnects.
DISPOSE_DELAY = float(os.getenv("DISPOSE_DELAY", "0.8"))

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING").upper()
