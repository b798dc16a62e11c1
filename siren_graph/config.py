"""
Runtime settings, read once from the environment.

PAPPERS_API_KEY=DEMO (the default) swaps the Pappers client for the offline
demo source, so the service runs without credentials.
"""
import os

PAPPERS_API_URL = os.environ.get("PAPPERS_API_URL", "https://api.pappers.fr/v2")
PAPPERS_API_KEY = os.environ.get("PAPPERS_API_KEY", "DEMO")
PAPPERS_TIMEOUT = float(os.environ.get("PAPPERS_TIMEOUT", "15"))
HEADERS = {"User-Agent": "siren-graph/0.1"}

DEMO_API_KEY = "DEMO"
DEMO_ROOT_SIREN = "443061841"
DEMO_LATENCY = float(os.environ.get("SIREN_GRAPH_DEMO_LATENCY", "0.3"))

DEFAULT_MAX_COST_DEPTH = int(os.environ.get("SIREN_GRAPH_DEFAULT_MAX_COST_DEPTH", "2"))
DEFAULT_MAX_NODES = int(os.environ.get("SIREN_GRAPH_DEFAULT_MAX_NODES", "100"))

# Hard caps applied to caller-supplied budgets
MAX_COST_DEPTH_CAP = 5
MAX_NODES_CAP = 1000

# Background crawls kept in memory; the oldest finished ones are dropped first
MAX_TRACKED_CRAWLS = int(os.environ.get("SIREN_GRAPH_MAX_TRACKED_CRAWLS", "50"))

LOG_LEVEL = os.environ.get("SIREN_GRAPH_LOG_LEVEL", "INFO")
