# =====================================================================
# SECTION START: IMPORTS
# =====================================================================

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from db import engine, Base
import models  # noqa: F401
from routers.admin import router as admin_router
from routers.trips import router as trips_router
from routers.users import router as users_router

# =====================================================================
# SECTION END: IMPORTS
# =====================================================================


# =====================================================================
# SECTION START: FastAPI APP AND CORS
# =====================================================================

app = FastAPI(title="FareAware")


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin_router)
app.include_router(trips_router)
app.include_router(users_router)

# =====================================================================
# SECTION END: FastAPI APP AND CORS
# =====================================================================
