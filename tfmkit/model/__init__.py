"""Item kinds and the collaborators they rely on (bounds and color types)."""
