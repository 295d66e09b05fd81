from . import fields
from . import message
from . import model


"""
vectorlink Protocol Layer
=========================

This package defines the transport-agnostic vocabulary used by vectorlink:
the value objects describing schemas, rows and queries, and the message
envelope that carries them.

The protocol layer MUST NOT depend on any transport implementation.

---------------------------------------------------------------------

Layer Architecture Overview
---------------------------

User Code
    │
    ▼
Client Facade (vectorlink.client)
    - catalog operations (schemas, entities)
    - transactions and inserts
    - queries

    │
    ▼
Message Model (model.py)
    Immutable value objects
    - SchemaRef, EntityRef, ColumnDef, EntityDefinition
    - Literal, InsertRow
    - Atomic / Compound predicates, Projection, OrderSpec, KnnSpec
    - QueryDescription, ResultRow

    │
    ▼
Message Envelope (message.py)
    - Message, Request, Payload
    - locally unique request ids

    │
    ▼
Field Vocabulary (fields.py)
    Canonical names for message types and operations
    Prevents string drift across system

---------------------------------------------------------------------

Below the Protocol Layer (for context)
--------------------------------------

Session Layer
    Correlates responses to outstanding requests

Codec / Framing Layer
    Maps Message <-> wire frames

Transport Layer
    Moves bytes (ZeroMQ)

---------------------------------------------------------------------
"""


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
