"""Application modules.

This package contains the feature modules of the pipeline:
- upload: chunked upload session and chunk assembly
- video: lifecycle record and status store
- job: work queue delivering transcode jobs
- transcoding: bitrate ladder, codec runner and master manifest
- stream: HLS manifest and segment delivery
"""
