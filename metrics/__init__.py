"""
metrics package

Metric model (`model`), the Prometheus text writer/reader (`exposition`),
commit + history retention (`history`) and the collector/worker
(`collector`). The model and exposition modules do no I/O so they can be
tested on their own.
"""
