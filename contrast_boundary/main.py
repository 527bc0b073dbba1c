from fastapi import FastAPI

from contrast_boundary.api import router
from contrast_boundary.core.lifespan import lifespan

api = FastAPI(lifespan=lifespan)
api.include_router(router)
