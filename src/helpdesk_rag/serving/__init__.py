"""
Serving — FastAPI application for help-center question answering.

Run it with ``helpdesk-rag serve`` or any ASGI server pointed at
``helpdesk_rag.serving.app:app``.
"""
