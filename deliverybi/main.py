from __future__ import annotations

from deliverybi.core.application import create_application

# Instancia global para uvicorn: `uvicorn deliverybi.main:app --reload`
app = create_application()
