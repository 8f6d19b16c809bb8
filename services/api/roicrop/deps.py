from typing import Iterator
import httpx
from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker
from .utils.blobstore import BlobStore
from .utils.roi import RoiDetector

# Collaborators live on app.state; create_app() puts them there.

def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory

def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()

def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store

def get_detector(request: Request) -> RoiDetector:
    return request.app.state.detector

def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client
