"""
Status-driven Takeout processing pipeline.

Stages:
    download: remote archive -> staged file
    examine: staged file -> extracted files + FileEntry rows
    media_process: pair, date and file a media entry
    sidecar_process: route a sidecar according to its media's status

Modules:
    repository: Persistence gateway with conditional claims
    remote: Google Drive client and archive registration
    downloader: Staging of remote archives
    extractor: Two-pass archive extraction
    pairing: File kind and pairing key rules
    associator: Media/sidecar link maintenance
    date_resolver: Capture date precedence
    filer: Relocation into the dated archive tree
    processors: Units of work per stage
    progress: Progress sinks
    scheduler: Bounded-concurrency tick loop
    factory: Wiring from settings
"""

__all__ = [
    "Repository",
    "PipelineScheduler",
    "Stage",
    "build_pipeline",
]
