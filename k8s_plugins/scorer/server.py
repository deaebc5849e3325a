from __future__ import annotations

from typing import Any, Dict, List, Tuple
from flask import Flask, request, jsonify

# Reference scheduler extender for the bridge: resource-fit filter and a
# headroom score. Useful for local runs and tests; swap in a real scorer by
# pointing SIMBRIDGE_EXTENDER_URL elsewhere.

app = Flask(__name__)


def _args() -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
	body = request.get_json(force=True, silent=True) or {}
	return body.get("pod") or {}, body.get("nodes") or []


def fits(pod: Dict[str, Any], node: Dict[str, Any]) -> bool:
	return (
		int(node.get("mipsAvailable", 0)) >= int(pod.get("mipsRequested", 0))
		and int(node.get("ramAvailable", 0)) >= int(pod.get("ramRequested", 0))
	)


def headroom_score(pod: Dict[str, Any], node: Dict[str, Any]) -> int:
	"""Percentage of the node's compute left after placing the pod, clamped to 0-100."""
	available = int(node.get("mipsAvailable", 0))
	if available <= 0:
		return 0
	remaining = available - int(pod.get("mipsRequested", 0))
	return max(0, min(100, remaining * 100 // available))


@app.post("/filter")
def filter_nodes():
	pod, nodes = _args()
	kept = [n for n in nodes if fits(pod, n)]
	return jsonify({"nodes": kept, "error": ""})


@app.post("/prioritize")
def prioritize_nodes():
	pod, nodes = _args()
	priorities = [{"host": n.get("name", ""), "score": headroom_score(pod, n)} for n in nodes]
	return jsonify(priorities)


if __name__ == "__main__":
	app.run(host="0.0.0.0", port=8081)
