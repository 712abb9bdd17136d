"""auth/ -- zkLogin session lifecycle for SuiVote.

Ephemeral keys, nonce and address derivation, the OAuth redirect and callback
flow, the browser-session store, and the transaction signing bridge.

Layer rule: auth/ imports stdlib, third-party libraries, and core/.
It does NOT import from api/ or web/.
api/ and web/ import from auth/, not the other way around.
"""
