from pysmtplan.encoders.effects import EffectIndex, Instant
from pysmtplan.encoders.temporal import EncoderTemporal
from pysmtplan.encoders.translator import EncodingContext, EncState, ExpressionTranslator
from pysmtplan.encoders.variables import VariableAllocator
