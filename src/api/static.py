"""
Static asset serving with single-page-app fallback
"""
import os
from functools import lru_cache

from fastapi import status
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

INDEX_DOCUMENT = "index.html"


class SpaStaticFiles(StaticFiles):
    """
    StaticFiles that answers unknown paths with the top-level document so
    client-side navigation works. HTML is revalidated on every load, other
    assets are cached for an hour.
    """

    async def get_response(self, path: str, scope):
        if "\x00" in path:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        if path == os.pardir or path.startswith(os.pardir + os.sep) or os.path.isabs(path):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)

        try:
            response = await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code != status.HTTP_404_NOT_FOUND:
                raise
            response = await super().get_response(INDEX_DOCUMENT, scope)

        if getattr(response, "path", "").endswith(".html"):
            response.headers["Cache-Control"] = "no-cache"
        else:
            response.headers["Cache-Control"] = "public, max-age=3600"
        return response


@lru_cache(maxsize=8)
def public_files(directory: str) -> SpaStaticFiles:
    # check_dir=False: the public directory may be created after startup
    return SpaStaticFiles(directory=directory, html=True, check_dir=False)
