"""
Simulator-to-orchestrator scheduling bridge.

Modules:
- state: in-memory store of simulated nodes and jobs (readers-writer locked)
- extender: HTTP client for the filter/prioritize extender protocol
- policy: node selection over extender priorities
- engine: single-flight scheduling passes and the background ticker
- reconcile: desired-vs-observed node diffing and application
- convergence: bounded-retry polling for downstream convergence
- gateway: orchestrator gateways (Kubernetes/KWOK and in-memory)
- k8s_objects: KWOK node and pod objects for the Kubernetes gateway
- config: settings from YAML and SIMBRIDGE_* environment variables
- service: node and job submission workflows
- api: REST API surface for the simulator
"""
