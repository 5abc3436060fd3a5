"""Built-in fault taxonomy for the tire production line.

Keys are normalized fault types as emitted by the diagnosis system. A JSON
file with the same shape can replace this table (FAULT_TAXONOMY_PATH):

    {
      "curing_temperature_excessive": {
        "candidateProcedures": ["inspect heater", "replace thermocouple"],
        "requiredTools": ["multimeter"],
        "requiredSkills": ["tire_curing_press"],
        "requiredParts": ["TCP-HTR-4KW"],
        "minimumPriority": "high"
      }
    }
"""

from typing import Any, Dict

DEFAULT_FAULT_TAXONOMY: Dict[str, Dict[str, Any]] = {
    "curing_temperature_excessive": {
        "candidate_procedures": ["inspect heater", "replace thermocouple"],
        "required_tools": ["multimeter", "thermal camera", "torque wrench"],
        "required_skills": ["tire_curing_press", "temperature_control", "electrical_systems"],
        "required_parts": ["TCP-HTR-4KW", "GEN-TS-K400"],
    },
    "curing_cycle_time_deviation": {
        "candidate_procedures": ["verify cycle timer", "inspect bladder", "check steam supply pressure"],
        "required_tools": ["pressure gauge", "laptop with PLC software"],
        "required_skills": ["tire_curing_press", "plc_troubleshooting"],
        "required_parts": ["TCP-BLD-800", "TCP-SEAL-200"],
    },
    "building_drum_vibration": {
        "candidate_procedures": ["inspect drum bearings", "check drum balance", "align drive motor"],
        "required_tools": ["vibration analyzer", "dial indicator", "bearing puller"],
        "required_skills": ["tire_building_machine", "vibration_analysis", "bearing_replacement"],
        "required_parts": ["TBM-BRG-6220", "TBM-CPL-50"],
        "minimum_priority": "medium",
    },
    "ply_tension_excessive": {
        "candidate_procedures": ["calibrate tension controller", "inspect dancer arm", "replace load cell"],
        "required_tools": ["calibration weights", "multimeter"],
        "required_skills": ["tire_building_machine", "tension_control", "sensor_alignment"],
        "required_parts": ["TBM-LC-500N", "TBM-SRV-1KW"],
    },
    "extruder_barrel_overheating": {
        "candidate_procedures": ["inspect barrel heater bands", "check cooling water flow", "replace barrel thermocouple"],
        "required_tools": ["thermal camera", "flow meter", "multimeter"],
        "required_skills": ["tire_extruder", "temperature_control", "instrumentation"],
        "required_parts": ["EXT-HTR-BAND", "GEN-TS-K400"],
        "minimum_priority": "high",
    },
    "low_material_throughput": {
        "candidate_procedures": ["inspect extruder screw", "check die for blockage", "verify feed rate"],
        "required_tools": ["bore gauge", "borescope"],
        "required_skills": ["tire_extruder", "material_flow"],
        "required_parts": ["EXT-SCR-250", "EXT-DIE-TR"],
    },
    "high_radial_force_variation": {
        "candidate_procedures": ["calibrate uniformity machine", "inspect load wheel", "verify rim chuck runout"],
        "required_tools": ["dial indicator", "reference tire"],
        "required_skills": ["tire_uniformity_machine", "data_analysis"],
        "required_parts": ["TUM-LW-BRG", "TUM-ENC-5000"],
    },
    "load_cell_drift": {
        "candidate_procedures": ["recalibrate load cell", "replace load cell", "inspect signal cabling"],
        "required_tools": ["calibration weights", "multimeter"],
        "required_skills": ["tire_uniformity_machine", "instrumentation", "sensor_alignment"],
        "required_parts": ["TUM-LC-2KN", "GEN-CBL-SHD"],
    },
    "bead_wire_tension_low": {
        "candidate_procedures": ["adjust bead wire brake", "inspect bead apex applicator"],
        "required_tools": ["tension meter"],
        "required_skills": ["bead_building", "tension_control"],
        "required_parts": ["BD-BRK-PAD"],
    },
}
