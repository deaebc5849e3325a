from __future__ import annotations

import logging
from typing import Optional

from simbridge.api import create_app
from simbridge.config import BridgeConfig
from simbridge.convergence import ConvergencePoller
from simbridge.engine import SchedulingEngine
from simbridge.extender import ExtenderClient
from simbridge.gateway import InMemoryGateway, KubernetesGateway, OrchestratorGateway
from simbridge.service import BridgeService
from simbridge.state import ClusterStateStore

logger = logging.getLogger(__name__)


def build_gateway(cfg: BridgeConfig) -> Optional[OrchestratorGateway]:
	"""Pick the orchestrator gateway named by the config; None runs the bridge standalone."""
	if cfg.gateway == "kubernetes":
		return KubernetesGateway(namespace=cfg.namespace, kubeconfig=cfg.kubeconfig)
	if cfg.gateway == "memory":
		return InMemoryGateway(namespace=cfg.namespace)
	return None


def build_app(cfg: Optional[BridgeConfig] = None, start_ticker: bool = True):
	"""Build the Flask app with the store, engine and gateway wired together."""
	cfg = cfg or BridgeConfig.from_env()
	logging.basicConfig(
		level=getattr(logging, cfg.log_level.upper(), logging.INFO),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)

	store = ClusterStateStore()
	extender = ExtenderClient(cfg.extender_url, timeout_s=cfg.extender_timeout_s)
	engine = SchedulingEngine(store, extender, interval_s=cfg.schedule_interval_s)
	gateway = build_gateway(cfg)
	service = BridgeService(store, engine, gateway=gateway, poller=ConvergencePoller(), config=cfg)
	logger.info(f"Bridge configured: extender={cfg.extender_url} gateway={cfg.gateway}")

	app = create_app(service, engine)
	if start_ticker:
		engine.start()
	return app


if __name__ == "__main__":
	app = build_app()
	app.run(host="0.0.0.0", port=8080, threaded=True)
