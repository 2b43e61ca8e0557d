"""Canned assistant replies picked from keywords in the user's message."""

from __future__ import annotations

from typing import Sequence

__all__ = ["synthesize_response", "FALLBACK_RESPONSE"]

_REACT_RESPONSE = """Great question about React! Here's what I can help you with:

**React Components** are the building blocks of React applications:

1. **Functional vs Class Components**: modern React primarily uses functional components with hooks
2. **Props**: data passed from parent to child components
3. **State**: internal component data that can change over time
4. **Hooks**: functions like useState and useEffect that add behaviour to functional components

Would you like me to explain any specific React concept in more detail?"""

_API_RESPONSE = """I'd be happy to help with API design! A few practices worth following:

1. **Resource-based URLs**: `/api/v1/users/123` rather than `/api/v1/getUser?id=123`
2. **HTTP methods**: GET reads, POST creates, PUT replaces, PATCH updates, DELETE removes
3. **Status codes**: 200 success, 201 created, 400 bad request, 404 not found, 500 server error
4. **A consistent response envelope** with `success`, `data` and `message` fields

What specific aspect of API design would you like to explore further?"""

_JAVASCRIPT_RESPONSE = """JavaScript is a powerful language! Some key concepts:

1. **Promises and async/await** for sequencing asynchronous work
2. **Modern syntax**: arrow functions, destructuring, template literals, spread
3. **Array methods**: map, filter, reduce, find, some, every

What specific JavaScript topic would you like to dive deeper into?"""

_DATABASE_RESPONSE = """Database design is crucial for application performance! Some guidance:

1. **Normalization** removes redundancy and protects integrity
2. **Indexes** on frequently filtered columns, such as email or created_at
3. **Relationships**: foreign keys for one-to-many, junction tables for many-to-many
4. **Data types** sized for the data they hold

What aspect of database design would you like to explore further?"""

FALLBACK_RESPONSE = """Thank you for your question! I can help with:

- Frontend development and React
- API design and backend development
- JavaScript and programming concepts
- Database design and SQL

Could you tell me more about what you'd like to explore?"""

# First matching rule wins.
_RULES: Sequence[tuple[tuple[str, ...], str]] = (
    (("react", "component"), _REACT_RESPONSE),
    (("api", "rest", "endpoint"), _API_RESPONSE),
    (("javascript", "js", "promise", "async"), _JAVASCRIPT_RESPONSE),
    (("database", "sql", "schema"), _DATABASE_RESPONSE),
)


def synthesize_response(user_content: str) -> str:
    """Return the reply for ``user_content``; identical input gives identical output."""

    lowered = user_content.lower()
    for keywords, response in _RULES:
        if any(keyword in lowered for keyword in keywords):
            return response
    return FALLBACK_RESPONSE
