"""HTTP layer of the Vigil service.

Key components:
- **main**: Application factory, lifespan and pipeline registration
- **services**: Composition root for the process-wide collaborators
- **middleware**: The stages of the request pipeline
- **routes**: Operational (``/health``, ``/metrics``) and business (``/api``)
  endpoints
- **schemas**: Response bodies
- **utils**: JSON rendering and client identity helpers
"""
