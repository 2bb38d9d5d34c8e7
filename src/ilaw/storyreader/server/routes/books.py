"""Book endpoints used by the reader."""

from flask import Blueprint, g

from ...db.schemas import BookResponse, PageResponse, ProgressResponse
from ...db.sqlite import BookNotFoundError
from ..guards import dump, reader_required, services

bp = Blueprint("books", __name__, url_prefix="/api/books")


@bp.route("/<int:book_id>", methods=["GET"])
@reader_required
def get_book(book_id: int):
    """Book metadata with its page count."""
    db = services().db
    book = db.get_book(book_id)
    if not book:
        raise BookNotFoundError(f"Book not found: {book_id}")

    data = BookResponse.model_validate(book)
    data.page_count = db.count_pages(book_id)
    return {"success": True, "book": dump(data)}


@bp.route("/<int:book_id>/pages", methods=["GET"])
@reader_required
def get_book_pages(book_id: int):
    """A book's pages in reading order, each with its questions."""
    db = services().db
    if not db.get_book(book_id):
        raise BookNotFoundError(f"Book not found: {book_id}")

    pages = db.get_pages_for_book(book_id)
    return {
        "success": True,
        "pages": [dump(PageResponse.model_validate(page)) for page in pages],
    }


@bp.route("/<int:book_id>/complete", methods=["POST"])
@reader_required
def complete_book(book_id: int):
    """Mark a book as 100% complete for the caller."""
    progress, created = services().progress_tracker.mark_complete(g.user.id, book_id)
    body = {
        "success": True,
        "message": "Book marked as completed",
        "progress": dump(ProgressResponse.model_validate(progress)),
    }
    return body, 201 if created else 200
