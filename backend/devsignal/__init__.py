"""DevSignal PQA core: signal intake, identity resolution, account scoring and alerting."""

__version__ = "0.1.0"
