from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify, request

from simbridge.engine import SchedulingEngine
from simbridge.errors import ConvergenceTimeoutError, NotFoundError, OrchestratorError, ValidationError
from simbridge.service import BridgeService
from simbridge.state import job_from_dict, job_to_dict, jobs_from_payload, node_to_dict, nodes_from_payload

logger = logging.getLogger(__name__)


def create_app(service: BridgeService, engine: SchedulingEngine) -> Flask:
	app = Flask(__name__)
	# Shared by all request threads of this process
	app.config['bridge_service'] = service
	app.config['scheduling_engine'] = engine

	@app.errorhandler(ValidationError)
	def handle_validation(e: ValidationError) -> Any:
		return jsonify({"error": str(e)}), 400

	@app.errorhandler(NotFoundError)
	def handle_not_found(e: NotFoundError) -> Any:
		return jsonify({"error": str(e)}), 404

	@app.errorhandler(ConvergenceTimeoutError)
	def handle_timeout(e: ConvergenceTimeoutError) -> Any:
		logger.warning(str(e))
		return jsonify({"error": str(e), "waiting_for": e.what, "last_state": e.last_state}), 408

	@app.errorhandler(OrchestratorError)
	def handle_orchestrator(e: OrchestratorError) -> Any:
		logger.error(str(e))
		return jsonify({"error": str(e)}), 502

	def json_body() -> Any:
		body = request.get_json(force=True, silent=True)
		if body is None:
			raise ValidationError("request body must be JSON")
		return body

	@app.post("/nodes")
	def submit_nodes() -> Any:
		nodes = nodes_from_payload(json_body())
		report = service.submit_nodes(nodes)
		return jsonify(report.to_dict())

	@app.get("/nodes")
	def list_nodes() -> Any:
		nodes = sorted(service.store.snapshot_nodes(), key=lambda n: n.id)
		return jsonify([node_to_dict(n) for n in nodes])

	@app.post("/pods")
	def submit_pod() -> Any:
		job = service.submit_job(job_from_dict(json_body()))
		return jsonify(job_to_dict(job)), 201

	@app.post("/schedule-pods")
	def schedule_pods() -> Any:
		jobs = jobs_from_payload(json_body())
		results = service.submit_jobs(jobs)
		return jsonify([job_to_dict(job) for job in results])

	@app.get("/pods/<job_id>/status")
	def pod_status(job_id: str) -> Any:
		try:
			parsed = int(job_id)
		except ValueError:
			raise ValidationError(f"invalid pod id '{job_id}'") from None
		return jsonify(job_to_dict(service.job_status(parsed)))

	@app.post("/schedule")
	def schedule_now() -> Any:
		report = engine.run_scheduling_pass()
		return jsonify(report.to_dict())

	@app.delete("/pods/delete-all")
	def delete_all_pods() -> Any:
		removed = service.reset_jobs()
		return jsonify({"status": "deleted", "pods": removed})

	@app.delete("/nodes/delete-all")
	def delete_all_nodes() -> Any:
		removed = service.reset_nodes()
		return jsonify({"status": "deleted", "nodes": removed})

	@app.delete("/cluster/reset")
	def reset_cluster() -> Any:
		pods = service.reset_jobs()
		nodes = service.reset_nodes()
		return jsonify({"status": "reset", "pods": pods, "nodes": nodes})

	@app.get("/healthz")
	def healthz() -> Any:
		nodes, jobs = service.store.counts()
		return jsonify({"status": "ok", "nodes": nodes, "jobs": jobs, "ticker": engine.running})

	return app
