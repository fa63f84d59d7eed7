"""
Shared route dependencies.
"""
from typing import Annotated

from fastapi import Depends, Request

from buildfolio.database.connection import SchemaCapabilities


def get_capabilities(request: Request) -> SchemaCapabilities:
    """Resolved once in the lifespan hook; full schema assumed if startup skipped it."""
    return getattr(request.app.state, "capabilities", None) or SchemaCapabilities()


Capabilities = Annotated[SchemaCapabilities, Depends(get_capabilities)]
