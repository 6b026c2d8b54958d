from garden.models.participant import Participant

__all__ = ["Participant"]
