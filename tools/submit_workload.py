#!/usr/bin/env python3
"""Post a YAML workload to a running bridge, the way the simulator would.

Example:
    python tools/submit_workload.py \
        --workload workloads/small.yaml \
        --url http://localhost:8080 \
        --reset

The workload file holds a `nodes:` list and a `jobs:` list using the wire
field names (id, name, mipsAvailable, ramAvailable, ... / mipsRequested,
ramRequested, ...). Nodes are submitted first, then the jobs as one batch.
"""
from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import Any, Dict, List, Tuple

import requests
import yaml


def load_workload(path: Path) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise SystemExit(f"{path} must contain a mapping with 'nodes' and 'jobs'")
    nodes = [item for item in data.get("nodes") or [] if isinstance(item, dict)]
    jobs = [item for item in data.get("jobs") or [] if isinstance(item, dict)]
    return nodes, jobs


def stamp() -> str:
    return time.strftime('%H:%M:%S')


def main() -> None:
    parser = argparse.ArgumentParser(description="simbridge workload submitter")
    parser.add_argument("--workload", required=True, type=Path)
    parser.add_argument("--url", default="http://localhost:8080")
    parser.add_argument("--reset", action="store_true", help="reset the cluster before submitting")
    parser.add_argument("--timeout", type=float, default=120.0, help="per-request timeout in seconds")
    args = parser.parse_args()

    nodes, jobs = load_workload(args.workload)
    if not nodes and not jobs:
        raise SystemExit(f"No nodes or jobs found in {args.workload}")

    base = args.url.rstrip("/")
    session = requests.Session()

    if args.reset:
        response = session.delete(f"{base}/cluster/reset", timeout=args.timeout)
        print(f"[{stamp()}] reset -> {response.status_code} {response.json()}")

    if nodes:
        response = session.post(f"{base}/nodes", json=nodes, timeout=args.timeout)
        data = response.json()
        if response.status_code != 200:
            raise SystemExit(f"[{stamp()}] node submission failed ({response.status_code}): {data.get('error')}")
        print(
            f"[{stamp()}] nodes received={data['received']} upserted={data['upserted']} "
            f"deleted={data['deleted']} ready={data['ready']}"
        )

    if jobs:
        response = session.post(f"{base}/schedule-pods", json=jobs, timeout=args.timeout)
        data = response.json()
        if response.status_code != 200:
            raise SystemExit(f"[{stamp()}] job submission failed ({response.status_code}): {data.get('error')}")
        for job in data:
            print(f"[{stamp()}] job {job['id']} ({job.get('name')}) -> {job['status']} node={job.get('nodeName')}")


if __name__ == "__main__":
    main()
