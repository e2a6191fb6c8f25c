from dreamcatcher.db.session import engine
from dreamcatcher.db.base import Base
from dreamcatcher.models import *  # Import all models

print("Creating database tables...")
Base.metadata.create_all(bind=engine)
print("✅ All tables created successfully!")
