"""The Quire stack virtual machine."""

from quire.vm.frames import UNBOUND, Activation, Frame
from quire.vm.machine import Vm
from quire.vm.output import Output
from quire.vm.state import State, TemplateState

__all__ = ["UNBOUND", "Activation", "Frame", "Output", "State", "TemplateState", "Vm"]
