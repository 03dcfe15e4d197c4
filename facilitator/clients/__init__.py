from facilitator.clients.groq_client import ChatStream, GroqClient, StreamChunk, StreamResult

__all__ = ["ChatStream", "GroqClient", "StreamChunk", "StreamResult"]
