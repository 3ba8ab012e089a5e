# Voice Evals API (FastAPI server over voice_evals)
