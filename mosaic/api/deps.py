"""Request dependencies shared by the API routers."""

from fastapi import Request

from mosaic.runtime import MosaicRuntime


def get_runtime(request: Request) -> MosaicRuntime:
    return request.app.state.runtime
