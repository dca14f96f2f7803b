# src/services/summary_stream_service/app/web.py
from fastapi import FastAPI
from portools_common.health import create_health_router

app = FastAPI(title="Summary Stream Service - Health")

# The stream reads Kafka and writes Postgres.
health_router = create_health_router('db', 'kafka')
app.include_router(health_router)
