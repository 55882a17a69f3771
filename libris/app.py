#!/usr/bin/env python3

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from libris.routes import api
from libris.configs import OPTIONS, LOG_LEVEL, CORS_ORIGINS
from libris import __version__ as VERSION

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Libris API",
    description="Libris: circulation engine for lending, reservations and fines",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api.router, prefix="/v1/api")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("libris.app:app", **OPTIONS)
