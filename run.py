import uvicorn
import sys
from pathlib import Path

# Add project root to Python path
project_root = str(Path(__file__).parent.absolute())
sys.path.insert(0, project_root)

from interview_coach.core.config import get_settings

if __name__ == "__main__":
    settings = get_settings()

    # Make sure the records directory exists before the first save
    settings.RECORDS_PATH.parent.mkdir(parents=True, exist_ok=True)

    # Run the application
    uvicorn.run(
        "interview_coach.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
