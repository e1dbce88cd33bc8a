"""
Common fixtures and setup for minstore tests.
Provides test entity classes and a fresh store bound to all of them.
"""
import pytest
from typing import List

from minstore.orm import Entity, Store

# ========================================================================
# Test entity classes
# ========================================================================

class User(Entity):
    """User with many posts."""
    entity = "users"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "name": cls.attr(""),
            "posts": cls.has_many("posts", "user_id"),
        }

class Post(Entity):
    """Post belonging to a user, with many comments."""
    entity = "posts"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "user_id": cls.attr(None),
            "title": cls.attr(""),
            "user": cls.belongs_to(User, "user_id"),
            "comments": cls.has_many("comments", "post_id"),
        }

class Comment(Entity):
    """Leaf of the user -> post -> comment chain."""
    entity = "comments"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "post_id": cls.attr(None),
            "content": cls.attr(""),
            "post": cls.belongs_to(Post, "post_id"),
        }

class Client(Entity):
    entity = "clients"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "name": cls.attr(""),
        }

class Invoice(Entity):
    """Invoice with client (belongs_to) and rows (has_many)."""
    entity = "invoices"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "name": cls.attr(""),
            "client_id": cls.attr(None),
            "client": cls.belongs_to(Client, "client_id"),
            "rows": cls.has_many("invoice_rows", "invoice_id"),
        }

class InvoiceRow(Entity):
    entity = "invoice_rows"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "order": cls.attr(0),
            "invoice_id": cls.attr(None),
            "taxes": cls.has_many("taxes", "invoice_row_id"),
            "invoice": cls.belongs_to(Invoice, "invoice_id"),
        }

class Tax(Entity):
    entity = "taxes"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "value": cls.attr(0),
            "invoice_row_id": cls.attr(None),
            "invoice_row": cls.belongs_to(InvoiceRow, "invoice_row_id"),
        }

class Example(Entity):
    """Plain entity with a mutable default."""
    entity = "examples"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "name": cls.attr(""),
            "tags": cls.attr(list),
        }

class Node(Entity):
    """Self-referencing tree entity."""
    entity = "nodes"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "name": cls.attr(""),
            "parent_id": cls.attr(None),
            "parent": cls.belongs_to("nodes", "parent_id"),
            "children": cls.has_many("nodes", "parent_id"),
        }

ALL_ENTITIES: List[type] = [User, Post, Comment, Client, Invoice, InvoiceRow, Tax, Example, Node]

# ========================================================================
# Fixtures
# ========================================================================

@pytest.fixture
def store() -> Store:
    """A fresh store bound to every test entity class."""
    store = Store()
    for entity_cls in ALL_ENTITIES:
        entity_cls.init(store)
    yield store
    for entity_cls in ALL_ENTITIES:
        entity_cls._store = None

@pytest.fixture
def blog_store(store: Store) -> Store:
    """Store holding one user, two posts and three comments (2/1 split)."""
    store.commit("create", {"entity": "users", "data": [{"id": 1, "name": "Alice"}]})
    store.commit("create", {"entity": "posts", "data": [
        {"id": 1, "user_id": 1, "title": "Post 1"},
        {"id": 2, "user_id": 1, "title": "Post 2"},
    ]})
    store.commit("create", {"entity": "comments", "data": [
        {"id": 1, "post_id": 1, "content": "Comment 1 on Post 1"},
        {"id": 2, "post_id": 1, "content": "Comment 2 on Post 1"},
        {"id": 3, "post_id": 2, "content": "Comment 1 on Post 2"},
    ]})
    return store

@pytest.fixture
def invoice_store(store: Store) -> Store:
    """Invoice 1 with rows created in order 2, 1 and taxes on both rows."""
    store.commit("create", {"entity": "clients", "data": [{"id": 1, "name": "ACME"}]})
    store.commit("create", {"entity": "invoices", "data": [{"id": 1, "name": "INV-1", "client_id": 1}]})
    store.commit("create", {"entity": "invoice_rows", "data": [
        {"id": 10, "order": 2, "invoice_id": 1},
        {"id": 11, "order": 1, "invoice_id": 1},
    ]})
    store.commit("create", {"entity": "taxes", "data": [
        {"id": 100, "value": 30, "invoice_row_id": 10},
        {"id": 101, "value": 10, "invoice_row_id": 10},
        {"id": 102, "value": 20, "invoice_row_id": 11},
    ]})
    return store
