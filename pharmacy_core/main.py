from fastapi import FastAPI

from pharmacy_core.config import settings
from pharmacy_core.logging_setup import configure_logging
from pharmacy_core.routers import inventory, invoices, returns

configure_logging(settings.log_level)

app = FastAPI(title='Pharmacy Core')

app.include_router(invoices.router)
app.include_router(inventory.router)
app.include_router(returns.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
