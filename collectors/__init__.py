"""
collectors package

Stateless sampler primitives. Each module reads exactly one data source
(/proc counters, systemctl, the FRP dashboard API, the config index, the FRP
binaries) and returns plain numbers or small records. Low-level readers raise
`errors.SourceUnavailable`; the metrics collector and the status payload
generator decide which neutral value to substitute.
"""
