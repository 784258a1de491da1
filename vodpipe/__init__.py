"""vodpipe - chunked video upload, HLS transcoding and segment serving."""
