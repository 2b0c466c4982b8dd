from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_store
from ..repositories import EntityStore, NoteQuery
from ..schemas import NoteCreate, NoteOut, NoteUpdate

router = APIRouter(
    prefix="/api/notes",
    tags=["notes"],
)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[NoteOut],
    summary="List Notes",
    description=(
        "List notes, newest first.\n\n"
        "Query parameters:\n"
        "- q: case-insensitive search over title, content and category\n"
        "- category: exact category filter"
    ),
)
def list_notes(
    q: Optional[str] = Query(None, description="Search text for title/content/category"),
    category: Optional[str] = Query(None, description="Only notes in this category"),
    store: EntityStore = Depends(get_store),
) -> List[NoteOut]:
    search = q.strip() if q else None
    if search or category is not None:
        items = store.notes.search(NoteQuery(search=search, category=category))
    else:
        items = store.notes.list()
    return [NoteOut.model_validate(it) for it in items]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=NoteOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Note",
    responses={
        201: {"description": "Note created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_note(payload: NoteCreate, store: EntityStore = Depends(get_store)) -> NoteOut:
    """
    Create a new note. Category defaults to 'general' and type to 'plain'.
    """
    return NoteOut.model_validate(store.notes.create(payload))


# PUBLIC_INTERFACE
@router.delete(
    "/all",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete All Notes",
    description="Remove every note. Ids of removed notes are not handed out again.",
    responses={204: {"description": "All notes deleted"}},
)
def delete_all_notes(store: EntityStore = Depends(get_store)) -> Response:
    store.notes.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get(
    "/{note_id}",
    response_model=NoteOut,
    summary="Get Note",
    responses={404: {"description": "Note not found"}},
)
def get_note(note_id: int, store: EntityStore = Depends(get_store)) -> NoteOut:
    item = store.notes.get(note_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    return NoteOut.model_validate(item)


# PUBLIC_INTERFACE
@router.put(
    "/{note_id}",
    response_model=NoteOut,
    summary="Update Note",
    description="Merge the provided fields onto the note and refresh updatedAt.",
    responses={404: {"description": "Note not found"}},
)
def update_note(note_id: int, payload: NoteUpdate, store: EntityStore = Depends(get_store)) -> NoteOut:
    return NoteOut.model_validate(store.notes.update(note_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Note",
    responses={
        204: {"description": "Note deleted"},
        404: {"description": "Note not found"},
    },
)
def delete_note(note_id: int, store: EntityStore = Depends(get_store)) -> Response:
    store.notes.delete(note_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
