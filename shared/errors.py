"""Errores de dominio compartidos por los servicios"""


class EventNotFoundError(ValueError):
    def __init__(self, event_name: str, event_date=None):
        super().__init__(f"Evento no encontrado: {event_name}")
        self.event_name = event_name
        self.event_date = event_date


class EventAlreadyExistsError(ValueError):
    def __init__(self, event_name: str, event_date=None):
        super().__init__(f"Ya existe un evento '{event_name}' en esa fecha")
        self.event_name = event_name
        self.event_date = event_date


class TicketTypeNotFoundError(ValueError):
    def __init__(self, ticket_type: str, event_name: str):
        super().__init__(f"Tipo de entrada '{ticket_type}' no definido para {event_name}")
        self.ticket_type = ticket_type
        self.event_name = event_name


class AllocationError(Exception):
    """La emisión falló; hay que reintentar la asignación desde cero"""


class AllocationConflictError(AllocationError):
    """ALLOCATION_CONFLICT: ya existe una entrada con el número asignado"""

    def __init__(self, sequence_number: int, event_name: str):
        super().__init__(f"Ya existe la entrada #{sequence_number} para {event_name}")
        self.sequence_number = sequence_number
        self.event_name = event_name
