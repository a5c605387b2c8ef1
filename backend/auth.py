from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from flask import request

from .storage import Storage


def bearer_token() -> Optional[str]:
	header = request.headers.get("Authorization", "")
	scheme, _, token = header.partition(" ")
	if scheme.lower() != "bearer" or not token.strip():
		return None
	return token.strip()


def current_user(storage: Storage) -> Optional[Dict[str, Any]]:
	"""The user owning the request's API token, or None when unauthenticated."""
	token = bearer_token()
	if not token:
		return None
	return storage.get_user_by_token(token)


async def current_user_async(storage: Storage) -> Optional[Dict[str, Any]]:
	"""current_user for async views; the token lookup runs off the event loop."""
	token = bearer_token()
	if not token:
		return None
	return await asyncio.to_thread(storage.get_user_by_token, token)
