"""
Remote toxicity classifier clients.

- **perspective_client.py**: Perspective ``comments:analyze`` over aiohttp,
  mapping transport failures to ClassifierError kinds.
"""
