from fastapi import FastAPI

from money_saver.logging_config import setup_logging
from money_saver.routers.accounts import router as accounts_router
from money_saver.routers.categories import router as categories_router
from money_saver.routers.transactions import router as transactions_router
from money_saver.routers.budgets import router as budgets_router
from money_saver.routers.alerts import router as alerts_router
from money_saver.routers.links import router as links_router
from money_saver.routers.analytics import router as analytics_router

logger = setup_logging()

app = FastAPI(title="Money Saver API")

app.include_router(accounts_router)
app.include_router(categories_router)
app.include_router(transactions_router)
app.include_router(budgets_router)
app.include_router(alerts_router)
app.include_router(links_router)
app.include_router(analytics_router)


@app.get("/")
def read_root():
    return "Server is running."
