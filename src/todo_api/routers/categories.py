from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from ..errors import AppError
from ..repositories import Repository, get_repository
from ..schemas import (
    CategoryCreate,
    CategoryListResponse,
    CategoryOut,
    CategoryResponse,
    CategoryUpdate,
    ErrorResponse,
)
from ..utils import parse_id

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/categories",
    tags=["categories"],
)

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    404: {"model": ErrorResponse, "description": "Category not found"},
    409: {"model": ErrorResponse, "description": "Category name already exists"},
}


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=CategoryListResponse,
    summary="List Categories",
    description="List all categories ordered by name, each with its current todo count.",
)
def list_categories(repo: Repository = Depends(get_repository)) -> CategoryListResponse:
    """
    List categories sorted by name ascending.
    """
    categories = repo.list_categories()
    return CategoryListResponse(data=[CategoryOut.model_validate(c) for c in categories])


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Category",
    responses={400: _ERRORS[400], 409: _ERRORS[409]},
)
def create_category(payload: CategoryCreate, repo: Repository = Depends(get_repository)) -> CategoryResponse:
    """
    Create a category. Names are unique.
    """
    created = repo.create_category(payload.name)
    logger.info("Created category %s (%r)", created["id"], created["name"])
    return CategoryResponse(data=CategoryOut.model_validate(created))


# PUBLIC_INTERFACE
@router.put(
    "/{category_id}",
    response_model=CategoryResponse,
    summary="Rename Category",
    responses=_ERRORS,
)
def update_category(
    category_id: str,
    payload: CategoryUpdate,
    repo: Repository = Depends(get_repository),
) -> CategoryResponse:
    """
    Rename a category and return it with its current todo count.
    """
    cid = parse_id(category_id, "category")
    if repo.get_category(cid) is None:
        raise AppError.not_found("Category not found")
    updated = repo.update_category(cid, payload.name)
    if updated is None:
        raise AppError.not_found("Category not found")
    return CategoryResponse(data=CategoryOut.model_validate(updated))


# PUBLIC_INTERFACE
@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Category",
    description="Delete a category. Its todos are kept and become uncategorized.",
    responses={400: _ERRORS[400], 404: _ERRORS[404]},
)
def delete_category(category_id: str, repo: Repository = Depends(get_repository)) -> Response:
    """
    Delete a category. Returns 204 on success, 404 if not found.
    """
    cid = parse_id(category_id, "category")
    if not repo.delete_category(cid):
        raise AppError.not_found("Category not found")
    logger.info("Deleted category %s", cid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
